import logging
import uuid

from django.shortcuts import redirect
from django.conf import settings
from django.contrib.auth.models import User
from django.contrib import messages
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required
from django.core.mail import send_mail
from django.urls import reverse

from core.pages import render_page
from .decorators import rate_limit
from .models import Profile

logger = logging.getLogger(__name__)


# Registration with email verification
def register_view(request):
    if request.method == 'POST':
        username = request.POST.get('username', '').strip()
        email = request.POST.get('email', '').strip()
        password = request.POST.get('password')
        password2 = request.POST.get('password2')

        if not username or not email or not password:
            messages.error(request, "Username, email and password are required.")
            return redirect('register')
        if password != password2:
            messages.error(request, "Passwords do not match!")
            return redirect('register')
        if User.objects.filter(username=username).exists():
            messages.error(request, "Username already taken!")
            return redirect('register')
        if User.objects.filter(email=email).exists():
            messages.error(request, "Email already taken!")
            return redirect('register')

        user = User.objects.create_user(username=username, email=email, password=password)

        # send email verification
        token = user.profile.verification_token
        verification_link = request.build_absolute_uri(reverse('verify_email', args=[token]))
        send_mail(
            'Verify Your Email',
            f'Click the link to verify your email: {verification_link}',
            settings.DEFAULT_FROM_EMAIL,
            [email],
            fail_silently=False
        )
        logger.info("Registered user %s, verification email sent", username)

        messages.success(request, "Account created! Check your email to verify your account.")
        return redirect('login')

    return render_page(request, 'Auth/Register')


# Email verification
def verify_email(request, token):
    try:
        profile = Profile.objects.get(verification_token=token)
        profile.email_verified = True
        profile.save()
        messages.success(request, "Email verified successfully! You can now login.")
    except Profile.DoesNotExist:
        messages.error(request, "Invalid verification link")
    return redirect('login')


# Login
@rate_limit(max_requests=10, window_seconds=300)
def login_view(request):
    if request.method == 'POST':
        username = request.POST.get('username')
        password = request.POST.get('password')

        user = authenticate(request, username=username, password=password)
        if user:
            if user.is_superuser or user.profile.email_verified:
                login(request, user)
                return redirect('dashboard')
            messages.error(request, "Email not verified. Check your inbox.")
            return redirect('login')

        logger.warning("Failed login for username %s", username)
        messages.error(request, "Invalid credentials")
        return redirect('login')

    return render_page(request, 'Auth/Login')


# Logout
@login_required
def logout_view(request):
    logout(request)
    messages.success(request, "Logged out successfully")
    return redirect('login')


# Forgot password
def forgot_password(request):
    if request.method == 'POST':
        email = request.POST.get('email')
        user = User.objects.filter(email=email).first()
        if user:
            token = uuid.uuid4()
            user.profile.verification_token = token
            user.profile.save()
            reset_link = request.build_absolute_uri(reverse('reset_password', args=[token]))
            send_mail(
                'Reset Your Password',
                f'Click to reset your password: {reset_link}',
                settings.DEFAULT_FROM_EMAIL,
                [email],
                fail_silently=False
            )
            messages.success(request, "Password reset link sent to your email")
        else:
            messages.error(request, "No account with that email")
        return redirect('forgot_password')
    return render_page(request, 'Auth/ForgotPassword')


# Reset password
def reset_password(request, token):
    try:
        profile = Profile.objects.get(verification_token=token)
        user = profile.user
    except Profile.DoesNotExist:
        messages.error(request, "Invalid or expired link")
        return redirect('forgot_password')

    if request.method == 'POST':
        password = request.POST.get('password')
        password2 = request.POST.get('password2')
        if not password or password != password2:
            messages.error(request, "Passwords do not match!")
            return redirect('reset_password', token=token)
        user.set_password(password)
        user.save()

        # a reset link only works once
        profile.verification_token = uuid.uuid4()
        profile.save()

        messages.success(request, "Password reset successfully! Login now.")
        return redirect('login')

    return render_page(request, 'Auth/ResetPassword', {'token': str(token)})
