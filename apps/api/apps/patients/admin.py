from django.contrib import admin

from .models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'email', 'phone', 'sex', 'date_of_birth', 'created_at']
    list_filter = ['sex', 'created_at']
    search_fields = ['name', 'phone', 'email']
    readonly_fields = ['created_at', 'updated_at']
    fieldsets = [
        ('Personal Information', {
            'fields': ['user', 'name', 'date_of_birth', 'sex', 'profile_image_url']
        }),
        ('Contact', {
            'fields': ['phone', 'email']
        }),
        ('Metadata', {
            'fields': ['created_at', 'updated_at']
        }),
    ]
