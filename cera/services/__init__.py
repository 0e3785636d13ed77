"""
Services layer - the incident core and its application façades.

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- The state machine, ledger and activity log own every incident mutation
- Commands return domain events; the notification service delivers them
- Routes resolve the actor and call a façade (IncidentService, UserService)
"""
