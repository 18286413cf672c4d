from rest_framework import serializers
from .models import StaffSchedule

class StaffScheduleSerializer(serializers.ModelSerializer):
    class Meta:
        model = StaffSchedule
        fields = ["id", "staff", "day_of_week", "start_time", "end_time", "is_available"]

    def validate(self, attrs):
        is_available = attrs.get("is_available", getattr(self.instance, "is_available", True))
        start = attrs.get("start_time", getattr(self.instance, "start_time", None))
        end = attrs.get("end_time", getattr(self.instance, "end_time", None))
        if is_available:
            if start is None or end is None:
                raise serializers.ValidationError("Working days need both a start and an end time.")
            if end <= start:
                raise serializers.ValidationError("End time must be after start time.")
        return attrs
