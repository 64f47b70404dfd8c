"""
Generator Configuration
Defines page limits, model routing, per-attempt strategy, completeness
thresholds and scoring weights
"""

from dataclasses import dataclass
from typing import Dict
from enum import Enum


class ModelTier(Enum):
    """Model selection tiers"""
    PREMIUM = "gpt-4.1"       # Content-heavy pages
    FAST = "gpt-4.1-mini"     # Simple form/info pages


# Hard cap on pages per generation; long prompts otherwise ask for 15+ pages
MAX_PAGES = 7

# Regenerations allowed per page after the first attempt
MAX_REGENERATION_ATTEMPTS = 2

# Generation service statuses worth retrying (rate limit, unavailable, overloaded)
RETRYABLE_STATUS_CODES = frozenset({429, 503, 529})

SHARED_ASSETS_MAX_TOKENS = 4000
SIMPLE_PAGE_MAX_TOKENS = 4000
CONTENT_PAGE_MAX_TOKENS = 8000

SIMPLE_PAGE_SLUGS = frozenset({
    "login", "signup", "register", "contact", "about", "auth",
    "error", "404", "terms", "privacy", "faq", "team", "blog",
})


# Attempt strategy: later attempts cool the temperature for focused output
ATTEMPT_STRATEGY = {
    "attempt_1": {
        "temperature": 0.9,
        "top_p": 0.95,
        "description": "Initial generation, creative content"
    },
    "attempt_2": {
        "temperature": 0.7,
        "top_p": 0.9,
        "description": "First regeneration, fill missing content"
    },
    "attempt_3": {
        "temperature": 0.5,
        "top_p": 0.85,
        "description": "Final regeneration, strict structure"
    }
}


@dataclass(frozen=True)
class ContentThresholds:
    """Visible-text floors for completeness checks. Hand-tuned, not derived."""
    acceptable: int = 100
    rich: int = 500


@dataclass(frozen=True)
class ScoringWeights:
    """Penalties for document and site quality scores"""
    critical: int = 15
    placeholder: int = 10
    missing_page: int = 10
    empty_page: int = 10
    jsx_page: int = 20


DEFAULT_THRESHOLDS = ContentThresholds()
DEFAULT_WEIGHTS = ScoringWeights()


def is_simple_page(slug: str) -> bool:
    return slug.lower() in SIMPLE_PAGE_SLUGS


def page_model(slug: str, premium: str = ModelTier.PREMIUM.value, fast: str = ModelTier.FAST.value) -> str:
    """Simple pages go to the faster model"""
    return fast if is_simple_page(slug) else premium


def page_max_tokens(slug: str) -> int:
    return SIMPLE_PAGE_MAX_TOKENS if is_simple_page(slug) else CONTENT_PAGE_MAX_TOKENS


def get_attempt_config(attempt_number: int) -> Dict:
    """
    Get generation parameters for a specific attempt

    Args:
        attempt_number: 1-based attempt (attempts beyond the table reuse the last entry)

    Returns:
        Configuration dict with temperature, top_p and description
    """
    key = f"attempt_{max(1, min(attempt_number, len(ATTEMPT_STRATEGY)))}"
    return ATTEMPT_STRATEGY[key]
