"""
Terminology glossary and story codex.

Both feed the system instructions: glossary terms are prepended as mandatory
translations, the active codex book is appended as story context grouped by
category, and a final output-control footer closes the prompt.
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from src.persistence.persisted_state import PersistedState

TERMS_KEY = 'terminology'
CODEX_KEY = 'codex_books'
ACTIVE_BOOK_KEY = 'active_codex_book'

CODEX_CATEGORIES = ('character', 'location', 'item', 'rank', 'other')
DEFAULT_BOOK_NAME = 'Default novel'

SEPARATOR = '#' * 69


def _new_id() -> str:
    return uuid.uuid4().hex


# ============================================================================
# Glossary
# ============================================================================

@dataclass
class Term:
    term_id: str
    original: str
    translation: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'Term':
        return cls(
            term_id=data.get('term_id') or _new_id(),
            original=str(data.get('original', '')).strip(),
            translation=str(data.get('translation', '')).strip(),
        )


class TerminologyStore:
    """Custom dictionary of mandatory term translations."""

    def __init__(self, state: Optional[PersistedState] = None):
        self.state = state
        stored = state.get(TERMS_KEY, []) if state else []
        self._terms: List[Term] = [Term.from_dict(t) for t in stored if isinstance(t, dict)]

    @property
    def terms(self) -> List[Term]:
        return list(self._terms)

    def _save(self):
        if self.state:
            self.state.set(TERMS_KEY, [t.to_dict() for t in self._terms])

    def add_term(self, original: str, translation: str) -> Term:
        """
        Add a term.

        Raises:
            ValueError: Blank fields, or the original already exists (case-insensitive)
        """
        original = (original or '').strip()
        translation = (translation or '').strip()
        if not original or not translation:
            raise ValueError("Both the original term and its translation are required.")
        if any(t.original.lower() == original.lower() for t in self._terms):
            raise ValueError(f'The term "{original}" already exists.')

        term = Term(_new_id(), original, translation)
        self._terms.append(term)
        self._save()
        return term

    def remove_term(self, term_id: str) -> bool:
        before = len(self._terms)
        self._terms = [t for t in self._terms if t.term_id != term_id]
        if len(self._terms) == before:
            return False
        self._save()
        return True

    def import_terms(self, terms: Iterable[dict], merge: bool = True) -> int:
        """
        Import terms from dictionaries with ``original`` and ``translation``.

        With ``merge`` imported terms overwrite existing ones sharing the same
        lowercase original; without it the glossary is replaced.

        Returns:
            Number of terms in the glossary afterwards
        """
        incoming = []
        for raw in terms:
            term = Term.from_dict(dict(raw, term_id=None))
            if term.original and term.translation:
                incoming.append(term)

        if merge:
            by_key: Dict[str, Term] = {t.original.lower(): t for t in self._terms}
            for term in incoming:
                by_key[term.original.lower()] = term
            self._terms = list(by_key.values())
        else:
            self._terms = incoming

        self._save()
        return len(self._terms)


# ============================================================================
# Codex
# ============================================================================

@dataclass
class CodexEntry:
    entry_id: str
    category: str
    name: str
    translation: str
    description: str = ''
    last_updated: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'CodexEntry':
        category = data.get('category', 'other')
        return cls(
            entry_id=data.get('entry_id') or _new_id(),
            category=category if category in CODEX_CATEGORIES else 'other',
            name=data.get('name', ''),
            translation=data.get('translation', ''),
            description=data.get('description', ''),
            last_updated=data.get('last_updated') or datetime.now().isoformat(),
        )


@dataclass
class CodexBook:
    book_id: str
    name: str
    entries: List[CodexEntry] = field(default_factory=list)

    def upsert_entry(self, category: str, name: str, translation: str,
                     description: str = '') -> Optional[CodexEntry]:
        """Add an entry, or update the one with the same name (case-insensitive)."""
        name = (name or '').strip()
        if not name:
            return None
        if category not in CODEX_CATEGORIES:
            category = 'other'

        for entry in self.entries:
            if entry.name.lower() == name.lower():
                entry.category = category
                entry.translation = translation.strip()
                entry.description = description.strip()
                entry.last_updated = datetime.now().isoformat()
                return entry

        entry = CodexEntry(_new_id(), category, name, translation.strip(), description.strip())
        self.entries.append(entry)
        return entry

    def remove_entry(self, entry_id: str) -> bool:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.entry_id != entry_id]
        return len(self.entries) != before

    def to_dict(self) -> dict:
        return {
            'book_id': self.book_id,
            'name': self.name,
            'entries': [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CodexBook':
        return cls(
            book_id=data.get('book_id') or _new_id(),
            name=data.get('name', DEFAULT_BOOK_NAME),
            entries=[CodexEntry.from_dict(e) for e in data.get('entries', [])],
        )


class CodexLibrary:
    """Set of codex books with one active book. Never empty."""

    def __init__(self, state: Optional[PersistedState] = None):
        self.state = state
        stored = state.get(CODEX_KEY, []) if state else []
        self.books: List[CodexBook] = [CodexBook.from_dict(b) for b in stored if isinstance(b, dict)]
        self.active_book_id: str = state.get(ACTIVE_BOOK_KEY, '') if state else ''

        if not self.books:
            self.books.append(CodexBook(_new_id(), DEFAULT_BOOK_NAME))
        if not self.get_book(self.active_book_id):
            self.active_book_id = self.books[0].book_id
        self._save()

    def _save(self):
        if self.state:
            self.state.set(CODEX_KEY, [b.to_dict() for b in self.books])
            self.state.set(ACTIVE_BOOK_KEY, self.active_book_id)

    def get_book(self, book_id: str) -> Optional[CodexBook]:
        return next((b for b in self.books if b.book_id == book_id), None)

    @property
    def active_book(self) -> CodexBook:
        return self.get_book(self.active_book_id) or self.books[0]

    def create_book(self, name: str) -> CodexBook:
        book = CodexBook(_new_id(), name.strip() or DEFAULT_BOOK_NAME)
        self.books.append(book)
        self.active_book_id = book.book_id
        self._save()
        return book

    def rename_book(self, book_id: str, name: str) -> bool:
        book = self.get_book(book_id)
        if not book or not name.strip():
            return False
        book.name = name.strip()
        self._save()
        return True

    def delete_book(self, book_id: str) -> bool:
        """Delete a book. The last remaining book cannot be deleted."""
        if len(self.books) <= 1 or not self.get_book(book_id):
            return False
        self.books = [b for b in self.books if b.book_id != book_id]
        if self.active_book_id == book_id:
            self.active_book_id = self.books[0].book_id
        self._save()
        return True

    def set_active(self, book_id: str) -> bool:
        if not self.get_book(book_id):
            return False
        self.active_book_id = book_id
        self._save()
        return True

    def upsert_entry(self, category: str, name: str, translation: str,
                     description: str = '') -> Optional[CodexEntry]:
        entry = self.active_book.upsert_entry(category, name, translation, description)
        if entry:
            self._save()
        return entry

    def remove_entry(self, entry_id: str) -> bool:
        removed = self.active_book.remove_entry(entry_id)
        if removed:
            self._save()
        return removed


# ============================================================================
# Prompt composition
# ============================================================================

def _glossary_section(terms: List[Term]) -> str:
    ordered = sorted(terms, key=lambda t: len(t.original), reverse=True)
    lines = '\n'.join(f'- Source: "{t.original}" -> Target: "{t.translation}"' for t in ordered)
    return f"""{SEPARATOR}
### STRICT GLOSSARY (MANDATORY TERMS) ###

1. NO MARKDOWN: do not make terms bold or italic. Use plain text only.
2. Always use the translation below when the source term appears, adapting
   only the grammar the target sentence requires.
3. MANDATORY TERMS:
{lines}

[End of Glossary]
{SEPARATOR}

"""


def _codex_section(book: CodexBook) -> str:
    ordered = sorted(book.entries, key=lambda e: len(e.name), reverse=True)
    section = f"""

{SEPARATOR}
### CODEX DATABASE (STRICT ADHERENCE REQUIRED) ###
NAME: "{book.name}"

RULES:
1. If a name in the text matches an entry below, you MUST use the provided translation.
2. NO MARKDOWN: do not put asterisks around codex terms.
3. Do not translate these names literally when a translation is provided here.

"""
    for category in CODEX_CATEGORIES:
        entries = [e for e in ordered if e.category == category]
        if not entries:
            continue
        section += f"--- {category.upper()} ---\n"
        for entry in entries:
            context = f" (Context: {entry.description})" if entry.description else ''
            section += f'- "{entry.name}" => "{entry.translation}"{context}\n'
    return section + SEPARATOR + "\n"


FINAL_OUTPUT_CONTROLS = f"""

{SEPARATOR}
### FINAL OUTPUT CONTROLS ###
1. SILENCE: do not output "Here is the translation", "Note:" or any conversational filler.
2. NO HALLUCINATIONS: do not add text that is not in the source.
3. OUTPUT: return ONLY the translated text.
{SEPARATOR}
"""


def compose_system_prompt(base: Optional[str],
                          terms: Optional[List[Term]] = None,
                          book: Optional[CodexBook] = None) -> str:
    """
    Fold the glossary and the active codex book into the system instructions.

    Args:
        base: User instructions (may be empty)
        terms: Glossary terms, prepended sorted by descending length
        book: Active codex book, appended grouped by category

    Returns:
        The combined instructions, always ending with the output controls
    """
    prompt = base or ''
    if terms:
        prompt = _glossary_section(terms) + prompt
    if book and book.entries:
        prompt += _codex_section(book)
    return prompt + FINAL_OUTPUT_CONTROLS
