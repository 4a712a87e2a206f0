# core/pages.py
"""
Page payloads for the client UI.

Every page view answers with the name of the client component to mount and the
props it needs, plus the shared data each page relies on (signed-in user and
queued flash messages).
"""
from django.contrib import messages
from django.core.serializers.json import DjangoJSONEncoder
from django.http import JsonResponse

from Authentication.models import user_role


def shared_auth(request):
    user = request.user
    if not user.is_authenticated:
        return {'user': None}
    return {
        'user': {
            'id': user.id,
            'username': user.username,
            'name': user.get_full_name() or user.username,
            'email': user.email,
            'role': user_role(user),
        }
    }


def flash_messages(request):
    return [
        {'level': message.level_tag, 'message': str(message)}
        for message in messages.get_messages(request)
    ]


def render_page(request, component, props=None, status=200):
    """Return the JSON payload for ``component`` rendered with ``props``"""
    payload = {
        'component': component,
        'props': props or {},
        'url': request.get_full_path(),
        'auth': shared_auth(request),
        'flash': flash_messages(request),
    }
    return JsonResponse(payload, status=status, encoder=DjangoJSONEncoder)
