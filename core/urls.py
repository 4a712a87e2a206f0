from django.urls import path
from . import views

urlpatterns = [
    path("", views.Home, name="Home"),
    path("dashboard/", views.dashboard, name="dashboard"),
    path("notifications/", views.notification_list, name="notifications"),
    path("notifications/<int:pk>/read/", views.notification_read, name="notification_read"),
    path("notifications/read-all/", views.notification_read_all, name="notification_read_all"),
    path("notifications/unread-count/", views.notification_unread_count, name="notification_unread_count"),
    path("notifications/send/", views.notification_send, name="notification_send"),
    path("events/", views.event_list, name="events"),
    path("events/create/", views.event_create, name="event_create"),
    path("events/<int:pk>/delete/", views.event_delete, name="event_delete"),
    path("messages/", views.message_inbox, name="message_inbox"),
    path("messages/sent/", views.message_sent, name="message_sent"),
    path("messages/compose/", views.message_compose, name="message_compose"),
    path("messages/send/", views.message_send, name="message_send"),
    path("messages/send-bulk/", views.message_send_bulk, name="message_send_bulk"),
    path("messages/unread-count/", views.message_unread_count, name="message_unread_count"),
    path("messages/<int:pk>/", views.message_show, name="message_show"),
    path("messages/<int:pk>/read/", views.message_read, name="message_read"),
    path("messages/<int:pk>/attachment/", views.message_attachment, name="message_attachment"),
    path("messages/<int:pk>/delete/", views.message_delete, name="message_delete"),
]
