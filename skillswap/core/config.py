import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """
    Application settings read from the environment (and a local .env file).
    """
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Auth
    AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY", "change-me-in-production")
    AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 720))  # 12 hours
    PASSWORD_RESET_EXPIRE_MINUTES = int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", 60))

    # HTTP
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    # Uploads
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
    MAX_MESSAGE_ATTACHMENTS = int(os.getenv("MAX_MESSAGE_ATTACHMENTS", 5))

    # Platform
    PLATFORM_FEE_RATE = float(os.getenv("PLATFORM_FEE_RATE", 0.1))  # 10% fee on completed projects
    MESSAGE_DELETE_WINDOW_MINUTES = int(os.getenv("MESSAGE_DELETE_WINDOW_MINUTES", 60))

    # Firebase (service account path; falls back to application default credentials)
    FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "service-account-key.json")
    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Client defaults
    API_URL = os.getenv("SKILLSWAP_API_URL", "http://localhost:8000")
    WS_URL = os.getenv("SKILLSWAP_WS_URL", "ws://localhost:8000/ws")

    def is_production(self) -> bool:
        """Returns True if running in production environment."""
        return self.ENVIRONMENT.lower() in ["production", "prod"]


settings = Settings()
