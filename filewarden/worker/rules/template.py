"""
Template expansion for rule actions.
Single source of truth for destination and pattern templating.
"""
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from filewarden.schemas.rules import ScreenshotMetadata

UNKNOWN_APP = "Unknown"
GENERAL_DOMAIN = "General"

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

# Checked in order, first keyword found wins
CATEGORY_KEYWORDS = [
    ("Invoices", ["invoice", "bill", "payment", "receipt", "tax"]),
    ("Finance", ["bank", "statement", "transaction", "finance", "credit", "debit"]),
    ("Study", ["notes", "note", "lecture", "study", "class", "course", "assignment", "homework", "exam"]),
]
DEFAULT_CATEGORY = "Unsorted"

_ILLEGAL_PATH_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")


def sanitize_for_path(value: str) -> str:
    """Make free text safe to use as a single folder or file name segment"""
    value = _ILLEGAL_PATH_CHARS.sub("-", value)
    value = _WHITESPACE.sub(" ", value)
    return value.strip()[:50]


def detect_pdf_category(file_name: str) -> str:
    """Classify a document by keywords in its file name"""
    lowered = file_name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def _replace_tokens(template: str, tokens: Mapping[str, str]) -> str:
    out = template
    for k, v in tokens.items():
        placeholder = "{" + k + "}"
        if placeholder in out:
            out = out.replace(placeholder, str(v))
    return out


def expand_template(
    template: str,
    path_vars: Mapping[str, str],
    metadata: Optional[ScreenshotMetadata] = None,
) -> str:
    """
    Expand path and metadata placeholders.

    Stages run in order and each rewrites the previous result:
    - {<path key>}: every configured path, e.g. {downloads}
    - {app}, {domain}: sanitized metadata values, falling back to
      "Unknown" / "General" when metadata or the field is missing

    Args:
        template: Template with {tokens}
        path_vars: Configured path placeholders
        metadata: Screenshot metadata, if any was captured

    Returns:
        Expanded string
    """
    out = _replace_tokens(template, path_vars)

    app_name = metadata.app_name if metadata else None
    domain = metadata.domain if metadata else None
    return _replace_tokens(out, {
        "app": sanitize_for_path(app_name) if app_name else UNKNOWN_APP,
        "domain": sanitize_for_path(domain) if domain else GENERAL_DOMAIN,
    })


def expand_destination(
    template: str,
    source_path: Union[str, Path],
    path_vars: Mapping[str, str],
    metadata: Optional[ScreenshotMetadata] = None,
) -> str:
    """Expand a destination template, including {category} for the source file"""
    out = expand_template(template, path_vars, metadata)
    category = detect_pdf_category(Path(source_path).name)
    return out.replace("{category}", category)


def date_tokens(now: datetime) -> Dict[str, str]:
    return {
        "YYYY": f"{now:%Y}",
        "MM": f"{now:%m}",
        "Month": MONTH_NAMES[now.month - 1],
        "DD": f"{now:%d}",
        "HH": f"{now:%H}",
        "mm": f"{now:%M}",
        "ss": f"{now:%S}",
    }


def expand_pattern(pattern: str, source_path: Union[str, Path], now: Optional[datetime] = None) -> str:
    """
    Expand a rename pattern.

    Available tokens:
    - {filename}: source stem (e.g. "report")
    - {ext}: source extension including dot (e.g. ".pdf")
    - {YYYY} {MM} {Month} {DD} {HH} {mm} {ss}: current local time
    """
    src = Path(source_path)
    now = now or datetime.now()
    tokens = {
        "filename": src.stem,
        "ext": src.suffix,
        **date_tokens(now),
    }
    return _replace_tokens(pattern, tokens)
