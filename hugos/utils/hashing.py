"""
Stable cache keys for transcripts and question/answer text.

Keys are MD5 hex digests of normalized UTF-8 text so the same input maps to
the same key on every process and platform.
"""
import hashlib
import re
from typing import Iterable, Mapping, Optional

MAX_NORMALIZED_LENGTH = 1000
TURN_SEPARATOR = '\n<|turn|>\n'

_WHITESPACE_RE = re.compile(r'\s+')
_PUNCTUATION_RE = re.compile(r'[^\w\s]')


def _fold(text: Optional[str]) -> str:
    if not text:
        return ''
    return _WHITESPACE_RE.sub(' ', text.lower().strip())


def _digest(text: str) -> str:
    return hashlib.md5(text.encode('utf-8')).hexdigest()


def normalize(text: Optional[str]) -> str:
    """Lowercase, trim, collapse whitespace, strip punctuation and truncate."""
    folded = _fold(text)
    return _PUNCTUATION_RE.sub('', folded)[:MAX_NORMALIZED_LENGTH]


def hash_text(text: Optional[str]) -> str:
    return _digest(normalize(text))


def hash_qna(question: str, answer: str) -> str:
    combined = f"{(question or '').strip()}:{(answer or '').strip()}"
    return hash_text(combined)


def hash_conversation(turns: Iterable[Mapping[str, str]]) -> str:
    """Hash an ordered transcript of {role, content} turns.

    Turns keep their order and role markers; only case and whitespace are
    folded, so the separator survives and long transcripts are never
    truncated into a shared prefix.
    """
    rendered = [
        f"{_fold(turn.get('role'))}: {_fold(turn.get('content'))}"
        for turn in turns or []
    ]
    return _digest(TURN_SEPARATOR.join(rendered))
