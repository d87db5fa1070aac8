"""
Gallery identity: which directory and which registry rows belong to an owner.

A persisted owner is identified by its primary key (composite keys joined with
a glue string). An owner that has not been saved yet gets a temporary id
rendered from a template such as ``{temporaryPrefix}-{temporaryIndex}-{combineId}``.
The identity seen when the owner was loaded is recorded so that a later save
can detect the change and move the gallery over.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from gallery_manager.exceptions import TemplateParseError

PLACEHOLDER = re.compile(r"\{(\w+)\}")

DEFAULT_TEMPORARY_INDEX = "0"


@dataclass(frozen=True)
class RequestContext:
    """Caller-supplied request identity used by temporary ids and tickets."""

    user_id: Optional[str] = None
    session_id: Optional[str] = None
    csrf_token: Optional[str] = None

    @property
    def combine_id(self) -> Optional[str]:
        return self.user_id if self.user_id else self.session_id

    def template_values(self) -> Dict[str, str]:
        return {
            "userId": self.user_id or "",
            "sessionId": self.session_id or "",
            "combineId": self.combine_id or "",
        }


@dataclass
class OwnerRef:
    """Stand-in owner for callers that only know the primary key (or nothing yet)."""

    primary_key: Any = None


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{name}`` placeholders; unknown placeholders are kept as written."""
    return PLACEHOLDER.sub(
        lambda m: str(values[m.group(1)]) if m.group(1) in values else m.group(0),
        template,
    )


def parse_template(
    template: str,
    values: Mapping[str, str],
    patterns: Mapping[str, str],
    raw: str,
) -> Dict[str, str]:
    """
    Inverse of ``render_template``.

    Placeholders listed in ``patterns`` become capture groups using the given
    regular expression; other known placeholders must match their value
    literally.

    Returns:
        dict: Captured value per placeholder in ``patterns``

    Raises:
        TemplateParseError: If ``raw`` does not match the template
    """
    parts = []
    seen = set()
    position = 0
    for match in PLACEHOLDER.finditer(template):
        parts.append(re.escape(template[position:match.start()]))
        name = match.group(1)
        if name in patterns:
            if name in seen:
                parts.append(f"(?P={name})")
            else:
                parts.append(f"(?P<{name}>{patterns[name]})")
                seen.add(name)
        elif name in values:
            parts.append(re.escape(str(values[name])))
        else:
            parts.append(re.escape(match.group(0)))
        position = match.end()
    parts.append(re.escape(template[position:]))

    found = re.fullmatch("".join(parts), raw)
    if found is None:
        raise TemplateParseError(f"'{raw}' does not match template '{template}'")
    return {name: found.group(name) for name in seen}


def owner_primary_key(owner: Any) -> Any:
    """
    Primary key of an owner, or None while it is not persisted.

    SQLAlchemy-mapped owners report their identity only once flushed;
    other objects expose a ``primary_key`` attribute.
    """
    try:
        state = sa_inspect(owner)
    except NoInspectionAvailable:
        return getattr(owner, "primary_key", None)
    identity = state.identity
    if identity is None:
        return None
    return identity[0] if len(identity) == 1 else identity


class GalleryIdentity:
    """Computes, records and compares the identity of one owner's gallery."""

    def __init__(
        self,
        owner: Any,
        context: Optional[RequestContext] = None,
        *,
        temporary_prefix: str = "temp",
        temporary_template: str = "{temporaryPrefix}-{temporaryIndex}-{combineId}",
        temporary_index_filter: str = r"\d+",
        pk_glue: str = "_",
        temporary_index: Optional[str] = None,
    ):
        self.owner = owner
        self.context = context or RequestContext()
        self.temporary_prefix = temporary_prefix
        self.temporary_template = temporary_template
        self.temporary_index_filter = temporary_index_filter
        self.pk_glue = pk_glue
        self.temporary_index = temporary_index if temporary_index is not None else DEFAULT_TEMPORARY_INDEX
        self._recorded: Optional[str] = None

    def _values(self) -> Dict[str, str]:
        values = self.context.template_values()
        values["temporaryPrefix"] = self.temporary_prefix
        return values

    def temporary_id(self) -> str:
        values = self._values()
        values["temporaryIndex"] = str(self.temporary_index)
        return render_template(self.temporary_template, values)

    def set_temporary_id(self, raw_gallery_id: str) -> bool:
        """
        Read the temporary index back out of a raw gallery id.

        Returns:
            True if ``raw_gallery_id`` matches the template for this context;
            False leaves ``temporary_index`` unchanged
        """
        try:
            captured = parse_template(
                self.temporary_template,
                self._values(),
                {"temporaryIndex": self.temporary_index_filter},
                raw_gallery_id,
            )
        except TemplateParseError:
            return False
        if "temporaryIndex" in captured:
            self.temporary_index = captured["temporaryIndex"]
        return True

    def current(self) -> str:
        pk = owner_primary_key(self.owner)
        if pk is None:
            return self.temporary_id()
        if isinstance(pk, (tuple, list)):
            return self.pk_glue.join(str(part) for part in pk)
        return str(pk)

    @property
    def recorded(self) -> Optional[str]:
        """Identity captured by the last ``record()``, or None before the first load."""
        return self._recorded

    def record(self) -> str:
        self._recorded = self.current()
        return self._recorded

    def restore(self, identity: Optional[str]) -> None:
        self._recorded = identity

    def is_temporary(self) -> bool:
        return owner_primary_key(self.owner) is None

    def changed(self) -> bool:
        return self._recorded is not None and self._recorded != self.current()
