import json
import logging

from django.http import JsonResponse, StreamingHttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .conf import get_setting
from .errors import ParseError
from .execution import execute, iter_tm_chunks
from .parsers import parse, parse_dfa, parse_regex, parse_tm

logger = logging.getLogger(__name__)


def _parse_error_response(e: ParseError) -> JsonResponse:
    logger.info("Rejected automaton description: %s", e)
    return JsonResponse({'error': e.message, 'details': e.to_dict()}, status=400)


def _positive_int(value, name: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer")
    return value


def _event(payload) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _error_stream(payload, status: int) -> StreamingHttpResponse:
    def error_generator():
        yield _event(payload)

    return StreamingHttpResponse(error_generator(), content_type='text/event-stream', status=status)


@csrf_exempt
@require_POST
def parse_automaton(request):
    """
    Parses an automaton description.

    Expects a POST request with a JSON body containing:
    - kind: One of dfa, nfa, regex, cfg, tm
    - source: The textual description

    Returns the parsed automaton as JSON.
    """
    try:
        data = json.loads(request.body)
        kind = data.get('kind')
        source = data.get('source')

        if not kind:
            return JsonResponse({'error': 'Missing automaton kind'}, status=400)
        if source is None:
            return JsonResponse({'error': 'Missing automaton source'}, status=400)

        automaton = parse(kind, source)
        return JsonResponse({'automaton': automaton.to_dict()})

    except ParseError as e:
        return _parse_error_response(e)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    except Exception as e:
        logger.exception("Unexpected failure while parsing automaton")
        return JsonResponse({'error': f'Server error: {str(e)}'}, status=500)


@csrf_exempt
@require_POST
def run_automaton(request):
    """
    Runs an automaton on an input string.

    Expects a POST request with a JSON body containing:
    - kind: One of dfa, nfa, regex, cfg, tm
    - source: The textual description
    - input: The input string
    - max_steps (optional): Step ceiling for Turing machines

    Returns the execution trace for the automaton's kind.
    """
    try:
        data = json.loads(request.body)
        kind = data.get('kind')
        source = data.get('source')
        input_string = data.get('input', '')

        if not kind:
            return JsonResponse({'error': 'Missing automaton kind'}, status=400)
        if source is None:
            return JsonResponse({'error': 'Missing automaton source'}, status=400)
        if not isinstance(input_string, str):
            return JsonResponse({'error': 'input must be a string'}, status=400)

        max_steps = _positive_int(data.get('max_steps'), 'max_steps', get_setting('TM_MAX_STEPS'))
        automaton = parse(kind, source)
        trace = execute(automaton, input_string, max_steps)
        return JsonResponse(trace.to_dict())

    except ParseError as e:
        return _parse_error_response(e)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    except Exception as e:
        logger.exception("Unexpected failure while running automaton")
        return JsonResponse({'error': f'Server error: {str(e)}'}, status=500)


@csrf_exempt
@require_POST
def min_dfa(request):
    """
    Minimises a DFA.

    Expects a POST request with a JSON body containing:
    - source: The DFA description

    Returns the original and minimised DFA with state counts.
    """
    try:
        data = json.loads(request.body)
        source = data.get('source')

        if source is None:
            return JsonResponse({'error': 'Missing DFA definition'}, status=400)

        dfa = parse_dfa(source)
        minimised = dfa.minimize()

        return JsonResponse({
            'original': dfa.to_dict(),
            'minimised': minimised.to_dict(),
            'original_states': len(dfa.states),
            'minimised_states': len(minimised.states),
            'states_removed': len(dfa.states) - len(minimised.states),
        })

    except ParseError as e:
        return _parse_error_response(e)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    except Exception as e:
        logger.exception("Unexpected failure while minimising DFA")
        return JsonResponse({'error': f'Server error: {str(e)}'}, status=500)


@csrf_exempt
@require_POST
def regex_to_nfa(request):
    """
    Compiles a regex document to an epsilon-NFA.

    Expects a POST request with a JSON body containing:
    - source: The regex document

    Returns the resolved expression and its Thompson NFA.
    """
    try:
        data = json.loads(request.body)
        source = data.get('source')

        if source is None:
            return JsonResponse({'error': 'Missing regex'}, status=400)

        regex = parse_regex(source)
        nfa = regex.nfa

        return JsonResponse({
            'expression': regex.to_string(),
            'nfa': nfa.to_dict(),
            'state_count': len(nfa.states),
            'transition_count': nfa.transition_count(),
        })

    except ParseError as e:
        return _parse_error_response(e)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    except Exception as e:
        logger.exception("Unexpected failure while compiling regex")
        return JsonResponse({'error': f'Server error: {str(e)}'}, status=500)


@csrf_exempt
@require_POST
def tm_run_stream(request):
    """
    Runs a Turing machine and streams its steps using Server-Sent Events.

    Expects a POST request with a JSON body containing:
    - source: The TM description
    - input: The input string
    - chunk_size (optional): Diffs per event
    - max_steps (optional): Step ceiling

    Events are the initial configuration, chunks of diffs, a summary and an end marker.
    Closing the connection stops the machine.
    """
    try:
        data = json.loads(request.body)
        source = data.get('source')
        input_string = data.get('input', '')

        if source is None:
            return _error_stream({'error': 'Missing TM definition'}, 400)
        if not isinstance(input_string, str):
            return _error_stream({'error': 'input must be a string'}, 400)

        chunk_size = _positive_int(data.get('chunk_size'), 'chunk_size', get_setting('TM_STREAM_CHUNK_SIZE'))
        max_steps = _positive_int(data.get('max_steps'), 'max_steps', get_setting('TM_MAX_STEPS'))
        tm = parse_tm(source)
        # Reject foreign symbols before the stream starts
        tm.initial_config(input_string)

        def result_generator():
            """Generator to stream TM steps as Server-Sent Events"""
            try:
                for chunk in iter_tm_chunks(tm, input_string, chunk_size, max_steps):
                    yield _event(chunk)

                yield _event({'type': 'end'})

            except Exception as e:
                logger.exception("TM stream failed")
                yield _event({'type': 'error', 'message': str(e)})

        response = StreamingHttpResponse(result_generator(), content_type='text/event-stream')
        response['Cache-Control'] = 'no-cache'
        response['X-Accel-Buffering'] = 'no'
        return response

    except ParseError as e:
        logger.info("Rejected TM description: %s", e)
        return _error_stream({'error': e.message, 'details': e.to_dict()}, 400)
    except ValueError as e:
        return _error_stream({'error': str(e)}, 400)
    except Exception as e:
        logger.exception("Unexpected failure while starting TM stream")
        return _error_stream({'error': f'Server error: {str(e)}'}, 500)
