import json
import logging
import re
from typing import Any, List, Optional

from openai import OpenAI

from .config import AI_MODEL, OPENAI_API_KEY, OPENAI_BASE_URL
from .progress import is_number
from .routine_templates import get_default_routine

logger = logging.getLogger(__name__)

# Initialize OpenAI client
openai_client = OpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL) if OPENAI_API_KEY else None


def parse_json_response(response: str) -> Optional[dict]:
    """Parse JSON from AI response with multiple fallback strategies"""
    if not response:
        return None

    # Try to find JSON in code blocks first
    code_block_match = re.search(r'```(?:json)?\s*([\s\S]*?)```', response)
    if code_block_match:
        try:
            return json.loads(code_block_match.group(1).strip())
        except json.JSONDecodeError:
            pass

    # Try to find JSON object directly
    json_match = re.search(r'\{[\s\S]*\}', response)
    if json_match:
        try:
            return json.loads(json_match.group())
        except json.JSONDecodeError:
            pass

    # Try to clean and parse the entire response
    try:
        cleaned = response.strip()
        if cleaned.startswith('{'):
            return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    return None


def _vision_messages(system_prompt: str, user_prompt: str, image_base64: str) -> List[dict]:
    return [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": user_prompt},
                {
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:image/jpeg;base64,{image_base64}"
                    }
                }
            ]
        }
    ]


def _complete_json(messages: List[dict]) -> str:
    response = openai_client.chat.completions.create(
        model=AI_MODEL,
        temperature=0,
        response_format={"type": "json_object"},
        messages=messages
    )
    return response.choices[0].message.content or ''


def _as_text(value: Any) -> str:
    """Lists from the model become a bullet list the formatter understands"""
    if isinstance(value, list):
        return '\n'.join(f'- {item}' for item in value if item)
    return str(value) if value else ''


def _clamped(value: Any, low: float, high: float) -> Optional[float]:
    if not is_number(value):
        return None
    return max(low, min(high, float(value)))


# ==================== PROGRESS PHOTO ANALYSIS ====================

BASELINE_SYSTEM_PROMPT = """You are an AI dermatologist. This is the user's first baseline photo. Analyse the current skin condition in detail.

Respond ONLY with valid JSON in this format:
{
  "baseline_analysis": {
    "texture": "description of skin texture",
    "tone": "description of colour and evenness",
    "concerns": ["concern1", "concern2"],
    "strengths": ["strength1", "strength2"]
  },
  "issues": ["issue1", "issue2"],
  "summary": "summary of the baseline skin condition",
  "recommendations": "what to focus on before the next tracking photo"
}"""

PROGRESS_SYSTEM_PROMPT = """You are an AI dermatologist analysing skin progress. Analyse this photo and compare it with the user's baseline condition.

Give a DETAILED and SPECIFIC analysis of:
1. Texture changes (smoother, rougher)
2. Tone changes (brighter, more even)
3. Redness or irritation changes
4. Pore changes
5. Acne or blemish changes
6. Hydration changes
7. An improvement percentage for every aspect

For every aspect "percentage" is a NUMBER: the change of that aspect as the model sees it
(positive = more of it, negative = less of it).

Respond ONLY with valid JSON in this format:
{
  "improvements": {
    "texture": {"status": "improved/worse/same", "percentage": 20, "detail": "detailed description"},
    "brightness": {"status": "improved/worse/same", "percentage": 15, "detail": "detailed description"},
    "redness": {"status": "improved/worse/same", "percentage": -25, "detail": "detailed description"},
    "pores": {"status": "improved/worse/same", "percentage": -10, "detail": "detailed description"},
    "acne": {"status": "improved/worse/same", "percentage": -30, "detail": "detailed description"},
    "hydration": {"status": "improved/worse/same", "percentage": 18, "detail": "detailed description"},
    "overall": {"status": "improved/worse/same", "percentage": 12, "detail": "detailed description"}
  },
  "issues": ["issue1", "issue2"],
  "summary": "complete, motivating summary of the progress",
  "recommendations": "how to keep improving the skin condition"
}"""


def validate_progress_analysis(result: dict, has_history: bool) -> dict:
    """
    Keep only the parts of the AI response the journal relies on.

    improvements must be a mapping and issues a list of names; anything
    else is dropped rather than stored.
    """
    validated = {}

    improvements = result.get('improvements')
    if has_history and isinstance(improvements, dict):
        validated['improvements'] = {
            str(key): value for key, value in improvements.items()
            if isinstance(value, (dict, int, float)) and not isinstance(value, bool)
        }

    baseline = result.get('baseline_analysis')
    if isinstance(baseline, dict):
        validated['baseline_analysis'] = baseline

    issues = result.get('issues', [])
    if not isinstance(issues, list):
        issues = []
    validated['issues'] = [str(i.get('name', '')) if isinstance(i, dict) else str(i) for i in issues if i]

    summary = result.get('summary')
    validated['summary'] = str(summary) if summary else get_fallback_progress_analysis(has_history)['summary']
    validated['recommendations'] = _as_text(result.get('recommendations', ''))

    return validated


def get_fallback_progress_analysis(has_history: bool) -> dict:
    """Return a safe fallback analysis when the AI gateway fails."""
    if has_history:
        return {
            'issues': [],
            'summary': 'Your new progress photo has been saved. Keep following your routine to see changes over time.',
            'recommendations': '- Take photos in the same lighting\n- Stay consistent with your routine',
        }
    return {
        'issues': [],
        'summary': 'This is your baseline photo. Keep tracking to see your progress!',
        'recommendations': '- Take your next photo in a week\n- Use the same lighting and angle',
    }


async def analyze_progress_photo(image_base64: str, has_history: bool) -> dict:
    """
    Analyse a journal photo with the AI gateway.

    The first photo gets a baseline description, later photos a comparison
    with per-aspect improvements. Never raises: any gateway problem yields
    the fallback analysis.
    """
    if not openai_client:
        logger.warning("OpenAI client not initialized, using fallback")
        return get_fallback_progress_analysis(has_history)

    system_prompt = PROGRESS_SYSTEM_PROMPT if has_history else BASELINE_SYSTEM_PROMPT
    user_prompt = (
        'Analyse this skin progress photo and give detailed improvements.'
        if has_history else
        'Analyse this baseline skin photo in detail.'
    )

    try:
        response_text = _complete_json(_vision_messages(system_prompt, user_prompt, image_base64))
        logger.info(f"AI progress response length: {len(response_text)}")

        result = parse_json_response(response_text)
        if isinstance(result, dict):
            return validate_progress_analysis(result, has_history)

        logger.warning(f"Could not parse AI response: {response_text[:300]}")
        return get_fallback_progress_analysis(has_history)

    except Exception as e:
        logger.error(f"AI progress analysis error: {str(e)}")
        return get_fallback_progress_analysis(has_history)


# ==================== SKIN SCAN ====================

SCAN_SKIN_TYPES = ['oily', 'dry', 'combination', 'normal', 'sensitive', 'acne-prone']

SKIN_SYSTEM_PROMPT = """You are an expert AI dermatologist. Analyse the face photo and report:
1. Skin type (oily, dry, combination, normal, sensitive, acne-prone)
2. Detected skin issues (redness, enlarged pores, acne, dark spots, fine lines, ...)
3. A confidence score between 0.0 and 1.0
4. An overall skin health score between 0 and 100
5. Detailed, personal care recommendations

Respond ONLY with valid JSON in this format:
{
  "skin_type": "skin type",
  "detected_issues": ["issue1", "issue2"],
  "confidence_score": 0.85,
  "skin_health_score": 72,
  "detailed_analysis": "complete analysis",
  "recommendations": "complete care recommendations"
}"""


def validate_skin_analysis(result: dict) -> dict:
    """
    Normalize a skin scan reply.

    Out-of-range or non-numeric scores are stored as None so the dashboard
    estimates them instead.
    """
    skin_type = str(result.get('skin_type') or 'normal').strip().lower()
    if skin_type not in SCAN_SKIN_TYPES:
        skin_type = 'combination'

    # Older prompts answered with detailed issue objects under 'issues'
    raw_issues = result.get('detected_issues', result.get('issues', []))
    if not isinstance(raw_issues, list):
        raw_issues = []
    detected_issues = []
    for issue in raw_issues:
        name = issue.get('name') if isinstance(issue, dict) else issue
        if name:
            detected_issues.append(str(name))

    confidence = _clamped(result.get('confidence_score'), 0.0, 1.0)
    health_score = result.get('skin_health_score')
    if not (is_number(health_score) and 0 <= health_score <= 100):
        health_score = None

    return {
        'skin_type': skin_type,
        'detected_issues': detected_issues,
        'confidence_score': round(confidence, 2) if confidence is not None else None,
        'skin_health_score': round(health_score) if health_score is not None else None,
        'detailed_analysis': _as_text(result.get('detailed_analysis')),
        'recommendations': _as_text(result.get('recommendations')),
        'is_fallback': False,
    }


def get_fallback_skin_analysis() -> dict:
    """Safe scan result when the AI gateway fails. Never updates the profile."""
    return {
        'skin_type': 'combination',
        'detected_issues': ['Hydration optimization', 'Pore refinement'],
        'confidence_score': 0.6,
        'skin_health_score': None,
        'detailed_analysis': 'Analysis completed. Your skin shows typical characteristics that can be improved with proper care.',
        'recommendations': '- Use a gentle cleanser twice daily\n- Apply a moisturizer for your skin type\n- Use sunscreen daily (SPF 30+)',
        'is_fallback': True,
    }


async def analyze_skin_image(image_base64: str) -> dict:
    """Classify skin type and issues from a face photo. Never raises."""
    if not openai_client:
        logger.warning("OpenAI client not initialized, using fallback")
        return get_fallback_skin_analysis()

    try:
        response_text = _complete_json(_vision_messages(
            SKIN_SYSTEM_PROMPT, 'Analyse this facial skin photo in detail.', image_base64
        ))
        logger.info(f"AI skin response length: {len(response_text)}")

        result = parse_json_response(response_text)
        if isinstance(result, dict):
            return validate_skin_analysis(result)

        logger.warning(f"Could not parse AI response: {response_text[:300]}")
        return get_fallback_skin_analysis()

    except Exception as e:
        logger.error(f"AI skin analysis error: {str(e)}")
        return get_fallback_skin_analysis()


# ==================== PRODUCT LABEL SCAN ====================

SEVERITY_LEVELS = ['low', 'medium', 'high']

# Without a readable score, anything below this asks for a patch test
PATCH_TEST_SAFETY_THRESHOLD = 0.7

PRODUCT_SYSTEM_PROMPT = """You are an expert skincare product analyser. Read the product photo (label or ingredient list) and report:
1. Product name (if visible)
2. Ingredients you can read
3. Allergens (ingredients that may cause allergies)
4. Irritants (ingredients that may cause irritation)
5. Safety score between 0.0 and 1.0 (1.0 = very safe)
6. Whether a patch test is recommended
7. A short summary
8. Usage recommendations

Respond ONLY with valid JSON in this format:
{
  "product_name": "product name or 'Unknown Product'",
  "ingredients_detected": ["ingredient1", "ingredient2"],
  "allergens": {"items": ["allergen1"], "severity": "low/medium/high"},
  "irritants": {"items": ["irritant1"], "severity": "low/medium/high"},
  "safety_score": 0.85,
  "patch_test_recommended": true,
  "analysis_summary": "short summary",
  "recommendations": "how to use the product"
}"""


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


def _ingredient_group(value: Any) -> dict:
    """{'items': [...], 'severity': ...}; a bare list is accepted as items"""
    if isinstance(value, list):
        value = {'items': value}
    if not isinstance(value, dict):
        value = {}
    items = _string_list(value.get('items'))
    severity = str(value.get('severity') or '').strip().lower()
    if severity not in SEVERITY_LEVELS:
        severity = 'medium' if items else 'low'
    return {'items': items, 'severity': severity}


def validate_product_analysis(result: dict) -> dict:
    allergens = _ingredient_group(result.get('allergens'))
    irritants = _ingredient_group(result.get('irritants'))

    safety_score = _clamped(result.get('safety_score'), 0.0, 1.0)
    if safety_score is not None:
        safety_score = round(safety_score, 2)

    patch_test = result.get('patch_test_recommended')
    if not isinstance(patch_test, bool):
        patch_test = bool(allergens['items'] or irritants['items']) or (
            safety_score is None or safety_score < PATCH_TEST_SAFETY_THRESHOLD
        )

    return {
        'product_name': str(result.get('product_name') or 'Unknown Product'),
        'ingredients_detected': _string_list(result.get('ingredients_detected')),
        'allergens': allergens,
        'irritants': irritants,
        'safety_score': safety_score,
        'patch_test_recommended': patch_test,
        'analysis_summary': _as_text(result.get('analysis_summary')),
        'recommendations': _as_text(result.get('recommendations')),
    }


def get_fallback_product_analysis() -> dict:
    return {
        'product_name': 'Unknown Product',
        'ingredients_detected': [],
        'allergens': {'items': [], 'severity': 'low'},
        'irritants': {'items': [], 'severity': 'low'},
        'safety_score': None,
        'patch_test_recommended': True,
        'analysis_summary': "We couldn't read this product label. Try a sharper photo of the ingredient list.",
        'recommendations': '- Patch test new products on your inner arm for 24 hours',
    }


async def analyze_product_image(image_base64: str) -> dict:
    """Read ingredients and flag allergens / irritants. Never raises."""
    if not openai_client:
        logger.warning("OpenAI client not initialized, using fallback")
        return get_fallback_product_analysis()

    try:
        response_text = _complete_json(_vision_messages(
            PRODUCT_SYSTEM_PROMPT, 'Analyse the ingredients of this skincare product.', image_base64
        ))
        result = parse_json_response(response_text)
        if isinstance(result, dict):
            return validate_product_analysis(result)

        logger.warning(f"Could not parse AI response: {response_text[:300]}")
        return get_fallback_product_analysis()

    except Exception as e:
        logger.error(f"AI product analysis error: {str(e)}")
        return get_fallback_product_analysis()


# ==================== PERSONALIZED ROUTINE ====================

ROUTINE_SYSTEM_PROMPT = """You are an expert dermatologist and skincare specialist. Create a personalized skincare routine from the user's skin analysis.

Respond ONLY with valid JSON in this format:
{
  "morning_routine": {
    "routine_name": "Morning Routine",
    "steps": [{"order": 1, "step_name": "Cleanser", "product_name": "generic product type", "instructions": "how to use", "why": "why this step matters"}]
  },
  "evening_routine": {
    "routine_name": "Evening Routine",
    "steps": [{"order": 1, "step_name": "Cleanser", "product_name": "generic product type", "instructions": "how to use", "why": "why this step matters"}]
  },
  "weekly_treatments": [{"treatment_name": "Exfoliation", "frequency": "2x a week", "product_name": "generic product type", "instructions": "how to use", "why": "benefit"}],
  "tips": ["tip1", "tip2", "tip3"]
}

Guidelines:
1. 4-8 steps per routine
2. Recommend generic product types, not brands
3. Consider the skin type and every detected issue"""

STEP_FIELDS = ['step_name', 'product_name', 'instructions', 'why']
TREATMENT_FIELDS = ['treatment_name', 'frequency', 'product_name', 'instructions', 'why']


def _routine_block(value: Any, default_name: str) -> Optional[dict]:
    if not isinstance(value, dict):
        return None
    steps = [s for s in value.get('steps') or [] if isinstance(s, dict) and s.get('step_name')]
    if not steps:
        return None
    return {
        'routine_name': str(value.get('routine_name') or default_name),
        'steps': [
            {'order': order, **{field: str(step.get(field) or '') for field in STEP_FIELDS}}
            for order, step in enumerate(steps, start=1)
        ],
    }


def validate_routine_response(result: dict, skin_type: str) -> dict:
    """Validated routine, or the skin type's template when a routine is missing."""
    morning = _routine_block(result.get('morning_routine'), 'Morning Routine')
    evening = _routine_block(result.get('evening_routine'), 'Evening Routine')
    if morning is None or evening is None:
        return get_default_routine(skin_type)

    treatments = result.get('weekly_treatments')
    treatments = treatments if isinstance(treatments, list) else []

    return {
        'morning_routine': morning,
        'evening_routine': evening,
        'weekly_treatments': [
            {field: str(t.get(field) or '') for field in TREATMENT_FIELDS}
            for t in treatments if isinstance(t, dict) and t.get('treatment_name')
        ],
        'tips': _string_list(result.get('tips')),
    }


async def generate_personalized_routine(analysis: Optional[dict], skin_type: str) -> dict:
    """
    Build a routine for the user's latest skin scan.

    Returns {'routine': ..., 'is_default': bool}. Without a scan, or when
    the gateway fails, the template for the skin type is returned.
    """
    if not analysis:
        return {'routine': get_default_routine(skin_type), 'is_default': True}

    if not openai_client:
        logger.warning("OpenAI client not initialized, using default routine")
        return {'routine': get_default_routine(skin_type), 'is_default': True}

    user_prompt = (
        "Skin analysis:\n"
        f"- Skin type: {skin_type}\n"
        f"- Detected issues: {json.dumps(analysis.get('detected_issues', []))}\n"
        f"- Detailed analysis: {analysis.get('detailed_analysis', '')}\n"
        f"- Recommendations: {analysis.get('recommendations', '')}\n\n"
        "Create a complete, personalized skincare routine for this user."
    )

    try:
        response_text = _complete_json([
            {"role": "system", "content": ROUTINE_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt}
        ])
        result = parse_json_response(response_text)
        if isinstance(result, dict):
            routine = validate_routine_response(result, skin_type)
            return {'routine': routine, 'is_default': routine == get_default_routine(skin_type)}

        logger.warning(f"Could not parse AI routine: {response_text[:300]}")
    except Exception as e:
        logger.error(f"Routine generation error: {str(e)}")

    return {'routine': get_default_routine(skin_type), 'is_default': True}


# ==================== SKINCARE CHAT ====================

CHAT_FALLBACK_REPLY = "I'm sorry, I couldn't generate a response. Please try again."

CHAT_SYSTEM_PROMPT = """You are a friendly, professional AI skincare consultant.

FORMAT RULES:
- At most 150 words per answer
- Use short bullet points, not long paragraphs
- One or two sentences per point

ANSWER LAYOUT:
[One-sentence greeting]

• [Main point 1]
• [Main point 2]
• [Main point 3]

[If there are steps:]
1. [Step 1]
2. [Step 2]

[One-sentence closing]

GUIDELINES:
- Tailor advice to the user's skin type
- Focus on active ingredients, not brands
- Separate morning and evening routines
- Remind the user to patch test new products
- Refer serious problems to a dermatologist"""


def build_chat_prompt(profile: Optional[dict]) -> str:
    """System prompt with the user's profile appended"""
    profile = profile or {}
    lines = [CHAT_SYSTEM_PROMPT, '', 'USER PROFILE:']
    for key, label in (('skin_type', 'Skin type'), ('gender', 'Gender'), ('age', 'Age')):
        if profile.get(key):
            lines.append(f'• {label}: {profile[key]}')
    return '\n'.join(lines)


async def chat_with_ai(message: str, profile: Optional[dict] = None) -> str:
    """Answer one chat message. Never raises: failures give the fallback reply."""
    if not openai_client:
        logger.warning("OpenAI client not initialized, using fallback")
        return CHAT_FALLBACK_REPLY

    try:
        response = openai_client.chat.completions.create(
            model=AI_MODEL,
            messages=[
                {"role": "system", "content": build_chat_prompt(profile)},
                {"role": "user", "content": message}
            ]
        )
        return response.choices[0].message.content or CHAT_FALLBACK_REPLY
    except Exception as e:
        logger.error(f"AI chat error: {str(e)}")
        return CHAT_FALLBACK_REPLY
