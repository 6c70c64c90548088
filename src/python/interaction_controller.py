"""
Interaction Controller - Citation Panel State Machine

Owns the display lifecycle of one citation panel:

    Idle --activate(c)--> Resolving(c, token) --ok--> Displaying(c, content)
                                              --err-> Failed(c, error)
    any  --dismiss()----> Idle

Every activation mints a fresh token. A lookup result is applied only if its
token is still the current one; anything else is stale and silently dropped,
so the visible behavior is "last activation wins" regardless of the order in
which lookups complete. Lookups are never aborted, only ignored.

IMPORTANT CONSTRAINTS:
- One controller per panel; there is no module-level instance.
- All mutation happens on the event loop thread that calls activate/dismiss.
- activate() must be called while an asyncio event loop is running.
"""

import asyncio
import os
import sys
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Set

from citation_extractor import Citation, CitationLike, as_citation
from verse_lookup import VerseLookupError, VerseLookupTimeout

# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_LOOKUP_TIMEOUT = float(os.environ.get('VERSE_LOOKUP_TIMEOUT', '15'))

DEBUG = os.environ.get('CITATIONS_DEBUG', '') not in ('', '0', 'false')

VerseLookup = Callable[[str], Awaitable[str]]


def _debug_log(message: str, debug: bool = False, prefix: str = "[CITATION]"):
    """Print debug message if debug mode is enabled."""
    if debug:
        print(f"{prefix} {message}", file=sys.stderr, flush=True)


def generate_token() -> str:
    """Mint a new opaque activation token."""
    return str(uuid.uuid4())


# ============================================================================
# STATES
# ============================================================================

@dataclass(frozen=True)
class InteractionState:
    kind: ClassVar[str] = 'idle'

    def to_dict(self) -> Dict[str, Any]:
        return {'state': self.kind}


@dataclass(frozen=True)
class Idle(InteractionState):
    kind: ClassVar[str] = 'idle'


@dataclass(frozen=True)
class Resolving(InteractionState):
    citation: Citation
    token: str
    kind: ClassVar[str] = 'resolving'

    def to_dict(self) -> Dict[str, Any]:
        return {'state': self.kind, 'citation': self.citation.text}


@dataclass(frozen=True)
class Displaying(InteractionState):
    citation: Citation
    content: str
    kind: ClassVar[str] = 'displaying'

    def to_dict(self) -> Dict[str, Any]:
        return {'state': self.kind, 'citation': self.citation.text, 'content': self.content}


@dataclass(frozen=True)
class Failed(InteractionState):
    citation: Citation
    error: Exception
    kind: ClassVar[str] = 'failed'

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {'state': self.kind, 'citation': self.citation.text, 'error': self.message}


# ============================================================================
# CONTROLLER
# ============================================================================

class InteractionController:
    """State machine for one citation panel.

    Args:
        lookup: Awaitable verse lookup, ``await lookup("John 3:16") -> str``.
            Any exception it raises is reported as Failed.
        lookup_timeout: Seconds before an unresolved lookup becomes Failed
            with VerseLookupTimeout; None waits forever.
        debug: Log transitions to stderr.
    """

    def __init__(self, lookup: VerseLookup, lookup_timeout: Optional[float] = DEFAULT_LOOKUP_TIMEOUT,
                 debug: bool = False):
        self._lookup = lookup
        self.lookup_timeout = lookup_timeout
        self.debug = debug or DEBUG
        self._state: InteractionState = Idle()
        self._token: Optional[str] = None
        self._listeners: List[Callable[[InteractionState], None]] = []
        # Strong references to in-flight lookups, including superseded ones
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def current_token(self) -> Optional[str]:
        return self._token

    def subscribe(self, listener: Callable[[InteractionState], None]) -> Callable[[], None]:
        """Register a listener for visible state changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: InteractionState):
        self._state = state
        _debug_log(f"state -> {state.to_dict()}", self.debug)
        for listener in list(self._listeners):
            listener(state)

    def activate(self, citation: CitationLike) -> 'asyncio.Task':
        """
        Show the given citation, superseding whatever the panel was doing.

        Returns:
            The task resolving the lookup (the controller keeps it alive, callers may ignore it)
        """
        citation = as_citation(citation)
        loop = asyncio.get_running_loop()

        token = generate_token()
        self._token = token
        self._set_state(Resolving(citation, token))
        task = loop.create_task(self._resolve(citation, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dismiss(self):
        """Close the panel; any in-flight lookup becomes stale."""
        self._token = None
        self._set_state(Idle())

    async def _resolve(self, citation: Citation, token: str):
        try:
            if self.lookup_timeout is None:
                content = await self._lookup(citation.text)
            else:
                content = await asyncio.wait_for(self._lookup(citation.text), self.lookup_timeout)
        except asyncio.TimeoutError:
            self._on_lookup_failure(
                token, citation,
                VerseLookupTimeout(f"Lookup for {citation.text} timed out after {self.lookup_timeout}s"),
            )
        except Exception as e:
            self._on_lookup_failure(token, citation, e)
        else:
            if not isinstance(content, str):
                self._on_lookup_failure(
                    token, citation, VerseLookupError(f"Malformed verse response for {citation.text}")
                )
            else:
                self._on_lookup_success(token, citation, content)

    def _is_current(self, token: str) -> bool:
        return token is not None and token == self._token

    def _on_lookup_success(self, token: str, citation: Citation, content: str):
        if not self._is_current(token):
            _debug_log(f"discarding stale result for {citation.text}", self.debug)
            return
        self._set_state(Displaying(citation, content))

    def _on_lookup_failure(self, token: str, citation: Citation, error: Exception):
        if not self._is_current(token):
            _debug_log(f"discarding stale failure for {citation.text}: {error}", self.debug)
            return
        self._set_state(Failed(citation, error))
