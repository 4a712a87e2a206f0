"""
URL configuration for the school project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('auth/', include('Authentication.urls')),
    path('manage/', include('management.urls')),
    path('exam/', include('ExamManagement.urls')),
    path('results/', include('ResultManagement.urls')),
    path('fees/', include('FeeManagement.urls')),
    path('', include('core.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
