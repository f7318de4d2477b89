from fastapi import FastAPI, APIRouter, HTTPException, Depends, Query, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
import logging
from pydantic import BaseModel, EmailStr
from typing import List, Optional, Dict, Any
import uuid
from datetime import datetime, timedelta
import jwt
import bcrypt
import base64
import binascii

from . import __version__
from .config import (
    MONGO_URL, DB_NAME, JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRATION_HOURS,
    CORS_ORIGINS, LOG_LEVEL,
)
from .ai_gateway import (
    analyze_product_image, analyze_progress_photo, analyze_skin_image, chat_with_ai,
    generate_personalized_routine,
)
from .flags import ClientFlags, FlagStore, MongoFlagStore
from .formatter import format_ai_response
from .progress import (
    PhotoSnapshot, build_progress_chart, calculate_health_score, select_default_pair,
    summarize_comparison,
)
from .quiz import QUIZ_CONFIDENCE_SCORE, QUIZ_QUESTIONS, score_quiz, tally_answers
from .routine import ACHIEVEMENTS, advance_streak, bonus_points, streak_message

# MongoDB connection
client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

app = FastAPI(title="SkinJournal API", version=__version__)
api_router = APIRouter(prefix="/api")
security = HTTPBearer()

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ==================== MODELS ====================

class UserCreate(BaseModel):
    email: EmailStr
    password: str
    name: str
    language: str = "en"

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserProfile(BaseModel):
    age: Optional[int] = None
    gender: Optional[str] = None
    skin_type: Optional[str] = None  # Filled in by the skin quiz
    skin_goals: Optional[List[str]] = []
    skin_concerns: Optional[List[str]] = []
    language: str = "en"

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    profile: Optional[UserProfile] = None
    created_at: datetime

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

class UpdatePasswordRequest(BaseModel):
    current_password: str
    new_password: str

class QuizSubmitRequest(BaseModel):
    answers: Dict[str, Any] = {}

class JournalCreateRequest(BaseModel):
    image_base64: str

class ScanRequest(BaseModel):
    image_base64: str

class ChatRequest(BaseModel):
    message: str

# Collections holding per-user documents, emptied when the account is deleted
USER_COLLECTIONS = [
    'photo_journals', 'journal_images', 'skin_questionnaires', 'routine_progress',
    'achievements', 'skin_analyses', 'product_scans', 'chat_messages',
]

# ==================== AUTH HELPERS ====================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))

def create_token(user_id: str) -> str:
    payload = {
        'user_id': user_id,
        'exp': datetime.utcnow() + timedelta(hours=JWT_EXPIRATION_HOURS)
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    try:
        token = credentials.credentials
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = payload.get('user_id')
        user = await db.users.find_one({'id': user_id})
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        return user
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

def user_response(user: dict) -> UserResponse:
    return UserResponse(
        id=user['id'],
        email=user['email'],
        name=user['name'],
        profile=UserProfile(**user.get('profile', {})) if user.get('profile') else None,
        created_at=user['created_at']
    )

def isoformat(value):
    return value.isoformat() if isinstance(value, datetime) else value

# ==================== AUTH ROUTES ====================

@api_router.post("/auth/register", response_model=TokenResponse)
async def register(user_data: UserCreate):
    existing = await db.users.find_one({'email': user_data.email})
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    if len(user_data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    user_id = str(uuid.uuid4())
    user = {
        'id': user_id,
        'email': user_data.email,
        'password': hash_password(user_data.password),
        'name': user_data.name,
        'profile': UserProfile(language=user_data.language).model_dump(),
        'created_at': datetime.utcnow()
    }

    await db.users.insert_one(user)
    logger.info(f"Registered user {user_id}")

    return TokenResponse(access_token=create_token(user_id), user=user_response(user))

@api_router.post("/auth/login", response_model=TokenResponse)
async def login(credentials: UserLogin):
    user = await db.users.find_one({'email': credentials.email})
    if not user or not verify_password(credentials.password, user['password']):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return TokenResponse(access_token=create_token(user['id']), user=user_response(user))

@api_router.get("/auth/me", response_model=UserResponse)
async def get_me(current_user: dict = Depends(get_current_user)):
    return user_response(current_user)

# ==================== PROFILE ROUTES ====================

@api_router.put("/profile", response_model=UserResponse)
async def update_profile(profile: UserProfile, current_user: dict = Depends(get_current_user)):
    await db.users.update_one(
        {'id': current_user['id']},
        {'$set': {'profile': profile.model_dump()}}
    )
    updated_user = await db.users.find_one({'id': current_user['id']})
    return user_response(updated_user)

@api_router.put("/profile/password")
async def update_password(request: UpdatePasswordRequest, current_user: dict = Depends(get_current_user)):
    if not verify_password(request.current_password, current_user['password']):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    if len(request.new_password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    await db.users.update_one(
        {'id': current_user['id']},
        {'$set': {'password': hash_password(request.new_password)}}
    )

    return {"message": "Password updated successfully"}

def get_flag_store() -> FlagStore:
    return MongoFlagStore(db.client_flags)

@api_router.delete("/account")
async def delete_account(
    current_user: dict = Depends(get_current_user),
    store: FlagStore = Depends(get_flag_store)
):
    user_id = current_user['id']
    for name in USER_COLLECTIONS:
        await db[name].delete_many({'user_id': user_id})
    await store.clear(user_id)
    await db.users.delete_one({'id': user_id})
    logger.info(f"Deleted account {user_id}")
    return {"message": "Account deleted successfully"}

# ==================== SKIN QUIZ ====================

@api_router.get("/quiz/questions")
async def get_quiz_questions():
    """Question catalog without the scoring tags"""
    return [
        {
            'id': question.id,
            'question': question.question,
            'options': [{'value': o.value, 'label': o.label} for o in question.options]
        }
        for question in QUIZ_QUESTIONS
    ]

@api_router.post("/quiz/submit")
async def submit_quiz(request: QuizSubmitRequest, current_user: dict = Depends(get_current_user)):
    """
    Score the skin quiz and save it as the user's questionnaire.

    One questionnaire per user: resubmitting replaces the previous answers.
    The profile skin type is updated to the same value ('oily sensitive').
    """
    result = score_quiz(request.answers)
    scores, _ = tally_answers(request.answers)
    full_skin_type = result.profile_skin_type
    now = datetime.utcnow()

    await db.skin_questionnaires.update_one(
        {'user_id': current_user['id']},
        {
            '$set': {
                'user_id': current_user['id'],
                'answers': result.answers,
                'skin_type': full_skin_type,
                'is_sensitive': result.is_sensitive,
                'confidence_score': QUIZ_CONFIDENCE_SCORE,
                'updated_at': now
            },
            '$setOnInsert': {'id': str(uuid.uuid4()), 'created_at': now}
        },
        upsert=True
    )

    profile = dict(current_user.get('profile') or {})
    profile['skin_type'] = full_skin_type
    await db.users.update_one(
        {'id': current_user['id']},
        {'$set': {'profile': profile}}
    )

    logger.info(f"Quiz result for user {current_user['id']}: {full_skin_type}")

    return {
        'skin_type': result.skin_type,
        'is_sensitive': result.is_sensitive,
        'profile_skin_type': full_skin_type,
        'answers': result.answers,
        'scores': scores,
        'confidence_score': QUIZ_CONFIDENCE_SCORE
    }

@api_router.get("/quiz/result")
async def get_quiz_result(current_user: dict = Depends(get_current_user)):
    questionnaire = await db.skin_questionnaires.find_one({'user_id': current_user['id']})
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Skin quiz not completed yet")

    return {
        'skin_type': questionnaire.get('skin_type'),
        'is_sensitive': questionnaire.get('is_sensitive', False),
        'answers': questionnaire.get('answers', {}),
        'confidence_score': questionnaire.get('confidence_score', QUIZ_CONFIDENCE_SCORE),
        'created_at': isoformat(questionnaire.get('created_at')),
        'updated_at': isoformat(questionnaire.get('updated_at'))
    }

# ==================== PHOTO JOURNAL ====================

def decode_image(image_base64: str):
    """Strip an optional data URL prefix and decode. Returns (clean_base64, bytes)"""
    if image_base64.startswith('data:') and ',' in image_base64:
        image_base64 = image_base64.split(',', 1)[1]
    # MIME-style encoders wrap the payload every 76 characters
    image_base64 = ''.join(image_base64.split())
    try:
        image_bytes = base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 image data")
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Empty image")
    return image_base64, image_bytes

def detect_content_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b'\x89PNG'):
        return 'image/png'
    if image_bytes[:4] == b'RIFF' and image_bytes[8:12] == b'WEBP':
        return 'image/webp'
    return 'image/jpeg'

def journal_response(journal: dict) -> dict:
    analysis = journal.get('analysis_result')
    snapshot = PhotoSnapshot(
        id=journal['id'],
        image_url=journal['image_url'],
        created_at=journal['created_at'],
        analysis_result=analysis if isinstance(analysis, dict) else None,
        comparison_summary=journal.get('comparison_summary')
    )
    return snapshot.model_dump(mode='json')

async def load_journals(user_id: str, newest_first: bool = True) -> List[dict]:
    return await db.photo_journals.find(
        {'user_id': user_id}
    ).sort('created_at', -1 if newest_first else 1).to_list(1000)

@api_router.post("/journal")
async def create_journal_entry(request: JournalCreateRequest, current_user: dict = Depends(get_current_user)):
    """
    Save a progress photo and analyse it.

    The first photo is the user's baseline, later photos are analysed as
    progress against it.
    """
    try:
        image_base64, image_bytes = decode_image(request.image_base64)

        has_history = await db.photo_journals.count_documents({'user_id': current_user['id']}) > 0
        analysis = await analyze_progress_photo(image_base64, has_history)

        journal_id = str(uuid.uuid4())
        await db.journal_images.insert_one({
            'id': journal_id,
            'user_id': current_user['id'],
            'content_type': detect_content_type(image_bytes),
            'image_base64': image_base64,
            'created_at': datetime.utcnow()
        })

        summary = analysis.get('summary')
        journal = {
            'id': journal_id,
            'user_id': current_user['id'],
            'image_url': f"/api/journal/{journal_id}/image",
            'analysis_result': analysis,
            'comparison_summary': summary,
            'created_at': datetime.utcnow()
        }
        await db.photo_journals.insert_one(journal)

        logger.info(f"Journal entry {journal_id} saved (baseline={not has_history})")
        return journal_response(journal)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Journal entry error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@api_router.get("/journal")
async def list_journal_entries(current_user: dict = Depends(get_current_user)):
    """User's progress photos, newest first"""
    journals = await load_journals(current_user['id'])
    return [journal_response(j) for j in journals]

@api_router.get("/journal/{journal_id}")
async def get_journal_entry(journal_id: str, current_user: dict = Depends(get_current_user)):
    journal = await db.photo_journals.find_one({'id': journal_id, 'user_id': current_user['id']})
    if not journal:
        raise HTTPException(status_code=404, detail="Journal entry not found")

    analysis = journal.get('analysis_result') or {}
    return {
        **journal_response(journal),
        'summary_blocks': format_ai_response(journal.get('comparison_summary') or ''),
        'recommendation_blocks': format_ai_response(analysis.get('recommendations') or '')
    }

@api_router.get("/journal/{journal_id}/image")
async def get_journal_image(journal_id: str, current_user: dict = Depends(get_current_user)):
    image = await db.journal_images.find_one({'id': journal_id, 'user_id': current_user['id']})
    if not image:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(
        content=base64.b64decode(image['image_base64']),
        media_type=image.get('content_type', 'image/jpeg')
    )

@api_router.delete("/journal/{journal_id}")
async def delete_journal_entry(journal_id: str, current_user: dict = Depends(get_current_user)):
    result = await db.photo_journals.delete_one({'id': journal_id, 'user_id': current_user['id']})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Journal entry not found")
    await db.journal_images.delete_one({'id': journal_id, 'user_id': current_user['id']})
    return {"message": "Journal entry deleted successfully"}

# ==================== SKIN SCAN ====================

def scan_response(scan: dict) -> dict:
    return {
        'id': scan['id'],
        'skin_type': scan.get('skin_type'),
        'detected_issues': scan.get('detected_issues', []),
        'confidence_score': scan.get('confidence_score'),
        'skin_health_score': scan.get('skin_health_score'),
        'detailed_analysis': scan.get('detailed_analysis', ''),
        'recommendations': scan.get('recommendations', ''),
        'is_fallback': scan.get('is_fallback', False),
        'created_at': isoformat(scan.get('created_at'))
    }

@api_router.post("/scan/analyze")
async def analyze_skin(request: ScanRequest, current_user: dict = Depends(get_current_user)):
    """
    Analyse a face photo and store it as the user's latest skin analysis.

    A real result also updates the profile skin type; the fallback result
    is stored but leaves the profile alone.
    """
    try:
        image_base64, _ = decode_image(request.image_base64)
        analysis = await analyze_skin_image(image_base64)

        scan = {
            'id': str(uuid.uuid4()),
            'user_id': current_user['id'],
            **analysis,
            'image_base64': image_base64,
            'created_at': datetime.utcnow()
        }
        await db.skin_analyses.insert_one(scan)

        if not analysis.get('is_fallback'):
            profile = dict(current_user.get('profile') or {})
            profile['skin_type'] = analysis['skin_type']
            await db.users.update_one(
                {'id': current_user['id']},
                {'$set': {'profile': profile}}
            )

        logger.info(f"Skin scan {scan['id']} saved: {analysis['skin_type']}")
        return {
            **scan_response(scan),
            'recommendation_blocks': format_ai_response(analysis.get('recommendations') or '')
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Skin scan error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@api_router.get("/scan/history")
async def get_scan_history(current_user: dict = Depends(get_current_user)):
    scans = await db.skin_analyses.find(
        {'user_id': current_user['id']}
    ).sort('created_at', -1).to_list(100)
    return [scan_response(s) for s in scans]

@api_router.get("/scan/{scan_id}")
async def get_scan(scan_id: str, current_user: dict = Depends(get_current_user)):
    scan = await db.skin_analyses.find_one({'id': scan_id, 'user_id': current_user['id']})
    if not scan:
        raise HTTPException(status_code=404, detail="Scan not found")
    return {
        **scan_response(scan),
        'recommendation_blocks': format_ai_response(scan.get('recommendations') or '')
    }

@api_router.delete("/scan/{scan_id}")
async def delete_scan(scan_id: str, current_user: dict = Depends(get_current_user)):
    result = await db.skin_analyses.delete_one({'id': scan_id, 'user_id': current_user['id']})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Scan not found")
    return {"message": "Scan deleted successfully"}

async def latest_skin_analysis(user_id: str) -> Optional[dict]:
    scans = await db.skin_analyses.find({'user_id': user_id}).sort('created_at', -1).to_list(1)
    return scans[0] if scans else None

# ==================== PRODUCT SCAN ====================

def product_scan_response(scan: dict) -> dict:
    return {
        'id': scan['id'],
        'product_name': scan.get('product_name'),
        'ingredients_detected': scan.get('ingredients_detected', []),
        'allergens_detected': scan.get('allergens_detected', {'items': [], 'severity': 'low'}),
        'irritants_detected': scan.get('irritants_detected', {'items': [], 'severity': 'low'}),
        'safety_score': scan.get('safety_score'),
        'patch_test_recommended': scan.get('patch_test_recommended', True),
        'analysis_summary': scan.get('analysis_summary', ''),
        'recommendations': scan.get('recommendations', ''),
        'created_at': isoformat(scan.get('created_at'))
    }

@api_router.post("/product/scan")
async def scan_product(request: ScanRequest, current_user: dict = Depends(get_current_user)):
    """Check a product label for allergens and irritants"""
    try:
        image_base64, _ = decode_image(request.image_base64)
        analysis = await analyze_product_image(image_base64)

        scan = {
            'id': str(uuid.uuid4()),
            'user_id': current_user['id'],
            'product_name': analysis['product_name'],
            'ingredients_detected': analysis['ingredients_detected'],
            'allergens_detected': analysis['allergens'],
            'irritants_detected': analysis['irritants'],
            'safety_score': analysis['safety_score'],
            'patch_test_recommended': analysis['patch_test_recommended'],
            'analysis_summary': analysis['analysis_summary'],
            'recommendations': analysis['recommendations'],
            'created_at': datetime.utcnow()
        }
        await db.product_scans.insert_one(scan)

        logger.info(f"Product scan {scan['id']} saved: {scan['product_name']}")
        return product_scan_response(scan)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Product scan error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@api_router.get("/product/scans")
async def get_product_scans(current_user: dict = Depends(get_current_user)):
    scans = await db.product_scans.find(
        {'user_id': current_user['id']}
    ).sort('created_at', -1).to_list(100)
    return [product_scan_response(s) for s in scans]

@api_router.delete("/product/scans/{scan_id}")
async def delete_product_scan(scan_id: str, current_user: dict = Depends(get_current_user)):
    result = await db.product_scans.delete_one({'id': scan_id, 'user_id': current_user['id']})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product scan not found")
    return {"message": "Product scan deleted successfully"}

# ==================== PROGRESS COMPARISON ====================

@api_router.get("/progress/compare")
async def compare_progress(
    before_id: Optional[str] = Query(None),
    after_id: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user)
):
    """
    Compare two progress photos.

    Without ids the earliest photo is 'before' and the latest 'after';
    either side can be picked explicitly.
    """
    journals = await load_journals(current_user['id'], newest_first=False)

    if len(journals) < 2 and not (before_id and after_id):
        raise HTTPException(
            status_code=400,
            detail="Upload at least 2 photos to the journal to compare progress"
        )

    by_id = {j['id']: j for j in journals}
    default_pair = select_default_pair(journals)

    def pick(journal_id: Optional[str], default_index: int) -> dict:
        if journal_id:
            if journal_id not in by_id:
                raise HTTPException(status_code=404, detail=f"Journal entry {journal_id} not found")
            return by_id[journal_id]
        return default_pair[default_index]

    before = pick(before_id, 0)
    after = pick(after_id, 1)

    return {
        'before': journal_response(before),
        'after': journal_response(after),
        **summarize_comparison(before, after)
    }

@api_router.get("/progress/analytics")
async def get_progress_analytics(current_user: dict = Depends(get_current_user)):
    """
    Health score, photo count and chart data for the dashboard.

    The score comes from the latest skin scan; progress photos only add
    their consistency bonus.
    """
    journals = await load_journals(current_user['id'])
    latest_analysis = await latest_skin_analysis(current_user['id'])
    total_scans = await db.skin_analyses.count_documents({'user_id': current_user['id']})

    return {
        'health_score': calculate_health_score(latest_analysis, len(journals)),
        'total_photos': len(journals),
        'total_scans': total_scans,
        'progress_chart': build_progress_chart(journals)
    }

# ==================== ROUTINE PROGRESS ENDPOINTS ====================

@api_router.get("/routine/progress")
async def get_routine_progress(current_user: dict = Depends(get_current_user)):
    """Get user's routine progress and streak bonus info"""
    progress = await db.routine_progress.find_one({'user_id': current_user['id']})

    if not progress:
        return {
            'streak': 0,
            'longest_streak': 0,
            'total_days_completed': 0,
            'bonus_points': 0,
            'last_completed_date': None
        }

    streak = progress.get('streak', 0)
    return {
        'streak': streak,
        'longest_streak': progress.get('longest_streak', streak),
        'total_days_completed': progress.get('total_days_completed', 0),
        'bonus_points': bonus_points(streak),
        'last_completed_date': progress.get('last_completed_date')
    }

async def record_achievements(user_id: str, achievement_types: List[str]) -> List[dict]:
    recorded = []
    for achievement_type in achievement_types:
        if achievement_type != 'milestone':
            existing = await db.achievements.find_one({'user_id': user_id, 'achievement_type': achievement_type})
            if existing:
                continue
        achievement = {
            'id': str(uuid.uuid4()),
            'user_id': user_id,
            'achievement_type': achievement_type,
            **ACHIEVEMENTS[achievement_type],
            'earned_at': datetime.utcnow()
        }
        await db.achievements.insert_one(achievement)
        recorded.append({
            'achievement_type': achievement_type,
            'title': achievement['title'],
            'description': achievement['description'],
            'icon': achievement['icon']
        })
    return recorded

@api_router.post("/routine/complete-day")
async def complete_routine_day(current_user: dict = Depends(get_current_user)):
    """Mark today's routine as completed and update streak"""
    progress = await db.routine_progress.find_one({'user_id': current_user['id']})
    result = advance_streak(progress, datetime.utcnow())

    if not result['already_completed']:
        await db.routine_progress.update_one(
            {'user_id': current_user['id']},
            {
                '$set': {
                    'user_id': current_user['id'],
                    'streak': result['streak'],
                    'longest_streak': result['longest_streak'],
                    'total_days_completed': result['total_days_completed'],
                    'last_completed_date': result['last_completed_date'],
                    'updated_at': datetime.utcnow().isoformat()
                }
            },
            upsert=True
        )

    new_achievements = await record_achievements(current_user['id'], result['achievements'])

    return {
        'streak': result['streak'],
        'longest_streak': result['longest_streak'],
        'total_days_completed': result['total_days_completed'],
        'bonus_earned': result['bonus_earned'],
        'total_bonus': result['total_bonus'],
        'achievements': new_achievements,
        'message': streak_message(result)
    }

@api_router.post("/routine/reset-streak")
async def reset_streak(current_user: dict = Depends(get_current_user)):
    """Reset user's streak (for testing or manual reset)"""
    await db.routine_progress.update_one(
        {'user_id': current_user['id']},
        {'$set': {'streak': 0, 'last_completed_date': None}},
        upsert=True
    )
    return {'success': True, 'message': 'Streak reset'}

@api_router.post("/routine/generate")
async def generate_routine(current_user: dict = Depends(get_current_user)):
    """
    Personalized morning/evening routine from the latest skin scan.

    Users without a scan get the template for their profile skin type.
    """
    analysis = await latest_skin_analysis(current_user['id'])
    profile = current_user.get('profile') or {}
    skin_type = (analysis or {}).get('skin_type') or profile.get('skin_type') or 'normal'

    result = await generate_personalized_routine(analysis, skin_type)
    logger.info(f"Routine for user {current_user['id']}: {skin_type} (default={result['is_default']})")

    return {
        'skin_type': skin_type,
        'routine': result['routine'],
        'is_default': result['is_default']
    }

@api_router.get("/routine/achievements")
async def get_achievements(current_user: dict = Depends(get_current_user)):
    achievements = await db.achievements.find(
        {'user_id': current_user['id']}
    ).sort('earned_at', -1).to_list(6)

    return [
        {
            'id': a['id'],
            'achievement_type': a['achievement_type'],
            'title': a.get('title'),
            'description': a.get('description'),
            'icon': a.get('icon'),
            'earned_at': isoformat(a.get('earned_at'))
        }
        for a in achievements
    ]

# ==================== SKINCARE CHAT ====================

CHAT_HISTORY_LIMIT = 50

def chat_response(entry: dict) -> dict:
    return {
        'id': entry['id'],
        'message': entry['message'],
        'ai_response': entry['ai_response'],
        'response_blocks': format_ai_response(entry['ai_response']),
        'created_at': isoformat(entry.get('created_at'))
    }

@api_router.post("/chat")
async def send_chat_message(request: ChatRequest, current_user: dict = Depends(get_current_user)):
    message = request.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    reply = await chat_with_ai(message, current_user.get('profile'))
    entry = {
        'id': str(uuid.uuid4()),
        'user_id': current_user['id'],
        'message': message,
        'ai_response': reply,
        'created_at': datetime.utcnow()
    }
    await db.chat_messages.insert_one(entry)
    return chat_response(entry)

@api_router.get("/chat/history")
async def get_chat_history(current_user: dict = Depends(get_current_user)):
    """Oldest first, as the conversation is displayed"""
    entries = await db.chat_messages.find(
        {'user_id': current_user['id']}
    ).sort('created_at', 1).to_list(CHAT_HISTORY_LIMIT)
    return [chat_response(e) for e in entries]

# ==================== CLIENT FLAGS ====================

async def get_client_flags(
    current_user: dict = Depends(get_current_user),
    store: FlagStore = Depends(get_flag_store)
) -> ClientFlags:
    return await ClientFlags(store, current_user['id']).load()

@api_router.get("/preferences/flags")
async def get_flags(flags: ClientFlags = Depends(get_client_flags)):
    return flags.as_dict()

@api_router.post("/preferences/flags/{flag}")
async def mark_flag_seen(flag: str, flags: ClientFlags = Depends(get_client_flags)):
    try:
        await flags.mark_seen(flag)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return flags.as_dict()

@api_router.delete("/preferences/flags/{flag}")
async def reset_flag(flag: str, flags: ClientFlags = Depends(get_client_flags)):
    try:
        await flags.reset(flag)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return flags.as_dict()

# ==================== HEALTH CHECK ====================

@api_router.get("/")
async def root():
    return {"message": "SkinJournal API", "version": __version__}

@api_router.get("/health")
async def health_check():
    return {"status": "healthy"}

# Include router
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()
