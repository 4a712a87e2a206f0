# Authentication/decorators.py
import time
from functools import wraps
from django.shortcuts import redirect
from django.contrib import messages
from django.core.cache import cache
from django.http import HttpResponse, JsonResponse
from .models import Profile, user_role


def wants_json(request):
    return (
        request.headers.get('x-requested-with') == 'XMLHttpRequest'
        or 'application/json' in request.headers.get('accept', '')
    )


def role_required(*roles):
    """Only let users whose role is in ``roles`` through; admins always pass"""
    def decorator(view_func):
        @wraps(view_func)
        def _wrapped_view(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return redirect('login')

            role = user_role(request.user)
            if role == Profile.ROLE_ADMIN or role in roles:
                return view_func(request, *args, **kwargs)

            if wants_json(request):
                return JsonResponse({'error': 'Access denied.'}, status=403)
            messages.error(request, "Access denied. You don't have permission to view that page.")
            return redirect('dashboard')
        return _wrapped_view
    return decorator


def admin_required(view_func):
    """Decorator to ensure only admin users can access the view"""
    return role_required(Profile.ROLE_ADMIN)(view_func)


def teacher_required(view_func):
    """Decorator to ensure only teachers or admins can access the view"""
    return role_required(Profile.ROLE_TEACHER)(view_func)


def student_required(view_func):
    """Decorator to ensure only students can access the view"""
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return redirect('login')

        student = getattr(request.user, 'student', None)
        if user_role(request.user) != Profile.ROLE_STUDENT or student is None:
            messages.error(request, "Access denied. Student account required.")
            return redirect('dashboard')

        return view_func(request, *args, **kwargs)
    return _wrapped_view


def rate_limit(max_requests=100, window_seconds=3600, methods=('POST',)):
    """Simple per-IP rate limiting backed by the cache"""
    def decorator(view_func):
        @wraps(view_func)
        def _wrapped_view(request, *args, **kwargs):
            if request.method not in methods:
                return view_func(request, *args, **kwargs)

            client_ip = request.META.get('HTTP_X_FORWARDED_FOR', request.META.get('REMOTE_ADDR', ''))
            client_ip = client_ip.split(',')[0].strip()
            key = f"rate-limit:{view_func.__name__}:{client_ip}"
            current_time = time.time()

            recent = [t for t in cache.get(key, []) if current_time - t < window_seconds]
            if len(recent) >= max_requests:
                return HttpResponse("Rate limit exceeded. Please try again later.", status=429)

            recent.append(current_time)
            cache.set(key, recent, window_seconds)
            return view_func(request, *args, **kwargs)
        return _wrapped_view
    return decorator
