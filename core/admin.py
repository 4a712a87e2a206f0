from django.contrib import admin
from .models import Notification, Event, Message


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'type', 'target_type', 'target_user', 'target_classroom', 'sender', 'created_at')
    list_filter = ('type', 'target_type', 'created_at')
    search_fields = ('title', 'body')
    filter_horizontal = ('read_by',)


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('title', 'event_type', 'start', 'end', 'classroom')
    list_filter = ('event_type',)
    search_fields = ('title',)


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('subject', 'sender', 'receiver', 'status', 'read_at', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('subject', 'body', 'sender__username', 'receiver__username')
