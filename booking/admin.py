from django.contrib import admin
from .models import Customer, Service, ServiceSetting, Staff, Appointment, AppointmentService


class ServiceSettingInline(admin.StackedInline):
    model = ServiceSetting
    can_delete = False


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "category", "price", "active")
    list_filter = ("active", "category")
    search_fields = ("name",)
    list_editable = ("price", "active")  # allow inline toggle
    inlines = [ServiceSettingInline]

@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "phone", "email", "vehicle_make", "vehicle_model")
    search_fields = ("name", "phone", "email", "vehicle_plate")

@admin.register(Staff)
class StaffAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "email", "phone", "role", "is_active")
    list_filter = ("is_active",)


class AppointmentServiceInline(admin.TabularInline):
    model = AppointmentService
    extra = 0


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "staff", "appointment_date", "start_time", "end_time", "status")
    list_filter = ("status", "staff", "appointment_date")
    search_fields = ("customer__name", "customer__phone")
    inlines = [AppointmentServiceInline]
