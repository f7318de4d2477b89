from typing import Any, Dict, List, Tuple

from pydantic import BaseModel

# ==================== QUESTION CATALOG ====================

SKIN_TYPES = ['dry', 'oily', 'combination', 'normal']
SENSITIVITY_TAGS = ['sensitive', 'not_sensitive']

SENSITIVITY_QUESTION_ID = 'q3'

# Fallbacks for the two degenerate outcomes of the tally
DEFAULT_SKIN_TYPE = 'normal'   # no signal at all
TIE_SKIN_TYPE = 'combination'  # several skin types share the top count

# Stored alongside every questionnaire result
QUIZ_CONFIDENCE_SCORE = 0.85


class QuizOption(BaseModel):
    value: str
    label: str
    score: List[str]


class QuizQuestion(BaseModel):
    id: str
    question: str
    options: List[QuizOption]


class QuizResult(BaseModel):
    skin_type: str
    is_sensitive: bool
    answers: Dict[Any, Any] = {}

    @property
    def profile_skin_type(self) -> str:
        """Denormalized form stored on the profile, e.g. 'dry sensitive'"""
        if self.is_sensitive:
            return f'{self.skin_type} sensitive'
        return self.skin_type


QUIZ_QUESTIONS = [
    QuizQuestion(
        id='q1',
        question='How does your skin feel 2 hours after washing your face (without any skincare)?',
        options=[
            QuizOption(value='a', label='Tight or pulling', score=['dry']),
            QuizOption(value='b', label='Oily all over', score=['oily']),
            QuizOption(value='c', label='Oily on the forehead and nose only', score=['combination']),
            QuizOption(value='d', label='Comfortable, nothing special', score=['normal']),
        ],
    ),
    QuizQuestion(
        id='q2',
        question='How do your pores look?',
        options=[
            QuizOption(value='a', label='Very small or invisible', score=['dry', 'normal']),
            QuizOption(value='b', label='Clearly visible around the nose', score=['combination']),
            QuizOption(value='c', label='Large on the cheeks and nose', score=['oily']),
        ],
    ),
    QuizQuestion(
        id=SENSITIVITY_QUESTION_ID,
        question='Does your skin get red or itchy when you switch products or are in the sun?',
        options=[
            QuizOption(value='a', label='Yes, often', score=['sensitive']),
            QuizOption(value='b', label='Rarely or never', score=['not_sensitive']),
        ],
    ),
]


def check_question_catalog(questions: List[QuizQuestion]) -> None:
    """Raise ValueError if a question uses tags outside its vocabulary."""
    for question in questions:
        allowed = SENSITIVITY_TAGS if question.id == SENSITIVITY_QUESTION_ID else SKIN_TYPES
        for option in question.options:
            if not option.score:
                raise ValueError(f"Option {question.id}/{option.value} has no score tags")
            unknown = [tag for tag in option.score if tag not in allowed]
            if unknown:
                raise ValueError(f"Option {question.id}/{option.value} uses invalid tags: {unknown}")


check_question_catalog(QUIZ_QUESTIONS)

_QUESTIONS_BY_ID = {q.id: q for q in QUIZ_QUESTIONS}


# ==================== SCORING ====================

def _find_option(question_id: Any, answer_value: Any):
    question = _QUESTIONS_BY_ID.get(question_id) if isinstance(question_id, str) else None
    if question is None or not isinstance(answer_value, str):
        return None
    for option in question.options:
        if option.value == answer_value:
            return option
    return None


def tally_answers(answers: Any) -> Tuple[Dict[str, int], bool]:
    """
    Count skin-type tags over all answered questions.

    Returns the four skin-type counters and the sensitivity flag. Unknown
    questions, unknown option codes and non-mapping input contribute nothing.
    """
    scores = {skin_type: 0 for skin_type in SKIN_TYPES}
    is_sensitive = False

    if not isinstance(answers, dict):
        return scores, is_sensitive

    for question_id, answer_value in answers.items():
        option = _find_option(question_id, answer_value)
        if option is None:
            continue

        if question_id == SENSITIVITY_QUESTION_ID:
            is_sensitive = 'sensitive' in option.score
            continue

        # One option may count towards several types (small pores -> dry + normal)
        for tag in option.score:
            if tag in scores:
                scores[tag] += 1

    return scores, is_sensitive


def score_quiz(answers: Any) -> QuizResult:
    """
    Classify skin type from questionnaire answers.

    The single highest counter wins. A shared maximum above zero is always
    reported as combination skin, and no signal at all means normal skin.
    Never raises: malformed answers simply carry no weight.
    """
    scores, is_sensitive = tally_answers(answers)

    max_score = max(scores.values())
    leaders = [skin_type for skin_type, score in scores.items() if score == max_score]

    if max_score == 0:
        skin_type = DEFAULT_SKIN_TYPE
    elif len(leaders) > 1:
        skin_type = TIE_SKIN_TYPE
    else:
        skin_type = leaders[0]

    return QuizResult(
        skin_type=skin_type,
        is_sensitive=is_sensitive,
        answers=dict(answers) if isinstance(answers, dict) else {},
    )
