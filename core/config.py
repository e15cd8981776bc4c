"""
core/config.py — Load environment variables from .env and expose them as
module-level constants.

Used by every engine module that needs a tunable.
"""

from dotenv import load_dotenv
import os

load_dotenv()

MONGODB_URI: str = os.getenv("MONGODB_URI", "")
REDIS_URL: str = os.getenv("REDIS_URL", "")
DB_NAME: str = os.getenv("DB_NAME", "physio_assessment")

# Diagnostic collaborator (OpenAI-compatible endpoint)
AZURE_ENDPOINT: str = os.getenv("AZURE_ENDPOINT", "")       # e.g. https://<resource>.openai.azure.com/openai/v1/
AZURE_API_KEY: str = os.getenv("AZURE_API_KEY", "")
AZURE_DEPLOYMENT: str = os.getenv("AZURE_DEPLOYMENT", "")   # deployment / model name

# Diagnosis orchestration
DIAGNOSIS_DELAY_SECONDS: float = float(os.getenv("DIAGNOSIS_DELAY_SECONDS", "2.0"))
DIAGNOSIS_TIMEOUT_SECONDS: float = float(os.getenv("DIAGNOSIS_TIMEOUT_SECONDS", "30"))
MAX_CONDITIONS: int = int(os.getenv("MAX_CONDITIONS", "5"))
CONFIDENCE_THRESHOLD: float = float(os.getenv("CONFIDENCE_THRESHOLD", "0.3"))
