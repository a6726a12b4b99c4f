import json
from functools import wraps

from django.http import JsonResponse

from ..exceptions import AnswerIndexError, ConcurrentUpdateError, InvalidStateError, NotFoundError


class BadPayload(ValueError):
    pass


def json_body(request) -> dict:
    """Parse a JSON object body; an empty body is {}."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (TypeError, ValueError):
        raise BadPayload("Request body is not valid JSON.")
    if not isinstance(data, dict):
        raise BadPayload("Request body must be a JSON object.")
    return data


def _error(message, status):
    return JsonResponse({"error": str(message)}, status=status)


def json_errors(view):
    """Translate service errors into JSON responses."""
    @wraps(view)
    def _wrapped(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except NotFoundError as e:
            return _error(e, 404)
        except InvalidStateError as e:
            return _error(e, 409)
        except ConcurrentUpdateError as e:
            return _error(e, 503)
        except (AnswerIndexError, BadPayload, ValueError) as e:
            return _error(e, 400)
    return _wrapped


def attempt_api(staff_only=False):
    """
    Load the attempt named by `attempt_id` and attach it as `request.attempt`.
    Attempts belonging to someone else look like missing ones (404) unless the
    user is staff.
    """
    def decorator(view):
        @wraps(view)
        @json_errors
        def _wrapped(request, *args, **kwargs):
            from ..services.lifecycle import get_attempt  # local import to avoid cycles

            attempt = get_attempt(kwargs.get("attempt_id"))
            user = request.user
            if staff_only and not user.is_staff:
                return _error("Staff only.", 403)
            if attempt.student_id != user.pk and not user.is_staff:
                return _error("Attempt not found.", 404)

            request.attempt = attempt
            return view(request, *args, **kwargs)
        return _wrapped
    return decorator


def staff_required_json(view):
    @wraps(view)
    def _wrapped(request, *args, **kwargs):
        if not request.user.is_staff:
            return _error("Staff only.", 403)
        return view(request, *args, **kwargs)
    return _wrapped
