# marketplace/middleware.py
from django.http import HttpRequest

NO_CACHE_PREFIXES = ('/api/cart/', '/api/checkout/', '/api/orders/', '/api/warehouse/')


class SecurityHeadersMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        response['X-Content-Type-Options'] = 'nosniff'
        response['X-Frame-Options'] = 'DENY'
        if not request.get_host().startswith(('localhost', '127.0.0.1', 'testserver')):
            response['Strict-Transport-Security'] = 'max-age=31536000'

        return response


class CacheControlMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request: HttpRequest):
        response = self.get_response(request)

        # Cart totals and payment state must never come from a cache
        if request.path.startswith(NO_CACHE_PREFIXES):
            response['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
            response['Pragma'] = 'no-cache'
            response['Expires'] = '0'

        return response
