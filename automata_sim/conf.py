from django.conf import settings

from .turing import MAX_STEPS

DEFAULTS = {
    'TM_MAX_STEPS': MAX_STEPS,
    'TM_STREAM_CHUNK_SIZE': 1000,
}


def get_setting(name: str):
    """Reads an entry of the AUTOMATA settings dict, falling back to DEFAULTS."""
    return getattr(settings, 'AUTOMATA', {}).get(name, DEFAULTS[name])
