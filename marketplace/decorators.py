from functools import wraps

from django.http import JsonResponse


def api_login_required(view_func):
    """JSON flavour of login_required: 401 instead of a redirect"""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"success": False, "error": "Authentication required"}, status=401)
        return view_func(request, *args, **kwargs)
    return wrapper


def api_staff_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"success": False, "error": "Authentication required"}, status=401)
        if not request.user.is_staff:
            return JsonResponse({"success": False, "error": "Not authorized"}, status=403)
        return view_func(request, *args, **kwargs)
    return wrapper
