from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .models import Clinic, UserProfile

# =============================================================================
# 1. USER PROFILE EXTENSION
# =============================================================================

class UserProfileInline(admin.StackedInline):
    """
    Edit role, clinic and UHID directly inside the standard User admin page.
    """
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'User Profile'
    fk_name = 'user'


class UserAdmin(BaseUserAdmin):
    inlines = (UserProfileInline,)
    list_display = ('username', 'email', 'first_name', 'last_name', 'get_role', 'is_staff')

    def get_role(self, obj):
        return obj.profile.role if hasattr(obj, 'profile') else '-'
    get_role.short_description = 'Role'


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'role', 'clinic', 'specialty', 'uhid', 'mobile')
    list_filter = ('role', 'clinic')
    search_fields = ('user__username', 'user__email', 'uhid', 'mobile')
    autocomplete_fields = ['user', 'clinic']


# =============================================================================
# 2. CLINIC
# =============================================================================

@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ('name', 'clinic_id', 'timezone', 'opening_time', 'closing_time', 'member_count')
    search_fields = ('name', 'clinic_id')

    def member_count(self, obj):
        return obj.members.count()
    member_count.short_description = 'Total Members'
