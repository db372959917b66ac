from django.contrib import admin

from .models import Rating


@admin.register(Rating)
class RatingAdmin(admin.ModelAdmin):
    list_display = ['doctor', 'patient', 'rating', 'appointment_id', 'created_at']
    list_filter = ['rating', 'created_at']
    search_fields = ['doctor__name', 'patient__name', 'appointment_id']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']
