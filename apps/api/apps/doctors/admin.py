"""Doctors admin."""
from django.contrib import admin
from .models import Hospital, Doctor, DoctorCertificate


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ['name', 'location', 'created_at']
    search_fields = ['name', 'location']
    ordering = ['name']


class DoctorCertificateInline(admin.StackedInline):
    model = DoctorCertificate
    extra = 0
    readonly_fields = ['submitted_at', 'updated_at', 'verified_at', 'verified_by']


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'email', 'specialization', 'registration_number',
        'consultation_fee', 'is_verified', 'created_at'
    ]
    list_filter = ['specialization', 'gender', 'certificate__is_verified']
    search_fields = ['name', 'email', 'registration_number']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [DoctorCertificateInline]
    ordering = ['name']

    fieldsets = (
        ('Identity', {
            'fields': ('id', 'user', 'name', 'email', 'phone', 'gender', 'date_of_birth', 'profile_image_url')
        }),
        ('Practice', {
            'fields': (
                'specialization', 'sub_specializations', 'registration_number',
                'qualifications', 'years_of_experience', 'languages_spoken',
                'consultation_fee', 'bio'
            )
        }),
        ('Audit', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def is_verified(self, obj):
        return obj.is_verified
    is_verified.boolean = True


@admin.register(DoctorCertificate)
class DoctorCertificateAdmin(admin.ModelAdmin):
    list_display = ['doctor', 'is_verified', 'verified_by', 'verified_at', 'submitted_at']
    list_filter = ['is_verified', 'submitted_at']
    search_fields = ['doctor__name', 'doctor__email']
    readonly_fields = ['submitted_at', 'updated_at']
    ordering = ['-submitted_at']
