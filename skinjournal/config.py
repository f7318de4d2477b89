import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'skinjournal_db')

# JWT Configuration
JWT_SECRET = os.environ.get('JWT_SECRET', 'skinjournal-secret-key-change-in-production')
JWT_ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
JWT_EXPIRATION_HOURS = int(os.environ.get('JWT_EXPIRATION_HOURS', 24 * 7))  # 1 week

# AI gateway (any OpenAI-compatible chat completions endpoint)
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL') or None
AI_MODEL = os.environ.get('AI_MODEL', 'gpt-4o')

CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
