from django.contrib import admin
from notifications.models import Notification

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('notification_type', 'recipient_type', 'recipient_phone', 'status', 'scheduled_for', 'sent_at')
    list_filter = ('status', 'notification_type', 'recipient_type')
    search_fields = ('recipient_phone', 'message_body')
