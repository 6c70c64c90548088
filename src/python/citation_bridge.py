#!/usr/bin/env python3
"""
Scripture Citations Python Bridge

JSON-based subprocess interface for the study app's server to:
1. Extract citations from model answers
2. Annotate answers (plain text, paragraphs, or structured JSON) into segments
3. Look up verse text for a citation

Protocol: Reads one JSON command from stdin, writes one JSON line to stdout:
    {"type": "result", ...}  or  {"type": "error", "error": "..."}

"type": "error" means the bridge itself failed (bad input, crash). A command
that ran but could not do its job (unknown command, missing field, verse not
found) answers {"type": "result", "error": "..."}, so a host checks the type
first and then the error field.
"""

import sys
import json
import traceback
from typing import Any, Dict, Optional

from citation_extractor import CitationExtractor, citation_texts
from annotator import (
    annotate,
    annotate_paragraphs,
    annotate_structured,
    segments_to_dicts,
)
from verse_lookup import VerseLookupError, create_client


# ============================================================================
# OUTPUT
# ============================================================================

def emit_error(error: str):
    """Emit an error to stdout as JSON."""
    print(json.dumps({"type": "error", "error": error}), flush=True)


def emit_result(data: Dict[str, Any]):
    """Emit the final result to stdout as JSON."""
    print(json.dumps({"type": "result", **data}), flush=True)


def _flag(value: Any, default: bool) -> bool:
    """Read a JSON flag; string spellings like "false" or "0" count as False."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ('false', '0', 'no', 'off', '')
    return bool(value)


def _extractor_for(command: Dict[str, Any]) -> CitationExtractor:
    return CitationExtractor(known_books=_flag(command.get('knownBooks'), True))


# ============================================================================
# COMMANDS
# ============================================================================

def lookup_verse(reference: str, provider: str = 'bolls', translation: Optional[str] = None) -> Dict[str, Any]:
    """Fetch verse text for one citation."""
    try:
        client = create_client(provider, translation)
    except ValueError as e:
        return {'error': str(e)}

    try:
        text = client.lookup_text(reference)
    except VerseLookupError as e:
        return {'error': str(e), 'reference': reference}

    return {
        'reference': reference,
        'text': text,
        'translation': getattr(client, 'translation', None),
    }


def handle_command(command: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle a command from the app server.

    Commands:
        - extract_citations: {text}
        - annotate: {text, citations?}
        - annotate_paragraphs: {text}
        - annotate_structured: {data}
        - lookup_verse: {reference, provider?, translation?}
        - check_dependencies
    """
    cmd = command.get('command', '')

    if cmd == 'check_dependencies':
        return check_dependencies()

    elif cmd == 'extract_citations':
        extractor = _extractor_for(command)
        text = command.get('text')
        return {
            'citations': citation_texts(extractor.extract(text)),
            'containsCitation': extractor.contains(text),
        }

    elif cmd == 'annotate':
        text = command.get('text')
        citations = command.get('citations')
        if citations is None:
            citations = _extractor_for(command).extract(text)
        return {'segments': segments_to_dicts(annotate(text, citations))}

    elif cmd == 'annotate_paragraphs':
        paragraphs = annotate_paragraphs(command.get('text'), _extractor_for(command))
        return {'paragraphs': [segments_to_dicts(p) for p in paragraphs]}

    elif cmd == 'annotate_structured':
        return {'data': annotate_structured(command.get('data'), _extractor_for(command))}

    elif cmd == 'lookup_verse':
        reference = command.get('reference')
        if not reference:
            return {'error': 'reference is required'}
        return lookup_verse(reference, command.get('provider', 'bolls'), command.get('translation'))

    else:
        return {'error': f'Unknown command: {cmd}'}


def check_dependencies() -> Dict[str, Any]:
    """Check if all required Python packages are installed."""
    deps: Dict[str, Any] = {
        'requests': False,
    }

    try:
        import requests
        deps['requests'] = True
        deps['requests_version'] = str(requests.__version__)
    except ImportError:
        pass

    return {
        'dependencies': deps,
        'all_installed': all(deps.get(k, False) for k in ['requests']),
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main():
    """
    Main entry point for subprocess mode.
    Reads a JSON command from stdin and writes the JSON response to stdout.
    """
    try:
        input_data = sys.stdin.read()
        if not input_data.strip():
            emit_error("No input provided")
            return

        command = json.loads(input_data)
    except json.JSONDecodeError as e:
        emit_error(f"Invalid JSON input: {e}")
        return
    except Exception as e:
        emit_error(f"Error reading input: {e}")
        return

    if not isinstance(command, dict):
        emit_error("Command must be a JSON object")
        return

    try:
        result = handle_command(command)
        emit_result(result)
    except Exception as e:
        emit_error(f"Error processing command: {e}\n{traceback.format_exc()}")


if __name__ == "__main__":
    main()
