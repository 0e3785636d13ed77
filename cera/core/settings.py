"""
Core settings and environment variables for the CERA incident-response backend.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """
    
    # Application
    APP_NAME: str = "CERA Incident Response"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    
    # CORS - comma separated list of frontend origins
    CORS_ORIGINS: str = "http://localhost:8081,http://localhost:19006,http://localhost:5173"
    
    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    FIREBASE_STORAGE_BUCKET: Optional[str] = None
    
    # In-process store for local development without Firebase credentials
    USE_MOCK_DB: bool = False
    
    # Actor resolution: "firebase" (verify ID tokens) or "header" (trust X-User-ID, dev only)
    AUTH_PROVIDER: str = "firebase"
    
    # Incident photos
    MEDIA_PROVIDER: str = "firebase"  # "firebase" or "memory"
    MEDIA_FOLDER: str = "cera/incidents"
    MAX_PHOTOS_PER_INCIDENT: int = 5
    MAX_PHOTO_BYTES: int = 6 * 1024 * 1024
    ALLOWED_PHOTO_TYPES: str = "image/jpeg,image/png,image/webp,image/heic,image/heif"
    
    # Volunteer credential files (certificates, IDs)
    MAX_USER_FILE_BYTES: int = 10 * 1024 * 1024
    
    # Push notifications
    # - PUSH_PROVIDER: "expo" (Expo push API), "fcm" (Firebase Cloud Messaging) or "none"
    PUSH_PROVIDER: str = "expo"
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_TIMEOUT_SECONDS: float = 5.0
    NOTIFICATION_WORKERS: int = 8
    
    # Nearby incident search defaults
    NEARBY_DEFAULT_RADIUS_KM: float = 10.0
    NEARBY_DEFAULT_LIMIT: int = 50
    NEARBY_MAX_LIMIT: int = 200
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origins(self):
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def allowed_photo_types(self):
        return {t.strip().lower() for t in self.ALLOWED_PHOTO_TYPES.split(",") if t.strip()}


# Global settings instance
settings = Settings()
