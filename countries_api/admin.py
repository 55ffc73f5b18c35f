from django.contrib import admin
from .models import Country, RefreshMetadata


@admin.register(Country)
class CountryAdmin(admin.ModelAdmin):
    """
    Admin configuration for Country model
    """
    list_display = [
        'name',
        'capital',
        'region',
        'population',
        'currency_code',
        'exchange_rate',
        'estimated_gdp',
        'last_refreshed_at'
    ]
    list_filter = ['region', 'currency_code']
    search_fields = ['name', 'capital', 'region', 'currency_code']
    ordering = ['name']
    readonly_fields = ['exchange_rate', 'estimated_gdp', 'created_at', 'updated_at', 'last_refreshed_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'capital', 'region', 'population', 'flag_url')
        }),
        ('Currency & Economics', {
            'fields': ('currency_code', 'exchange_rate', 'estimated_gdp')
        }),
        ('Metadata', {
            'fields': ('last_refreshed_at', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(RefreshMetadata)
class RefreshMetadataAdmin(admin.ModelAdmin):
    list_display = ['total_countries', 'last_refreshed_at']
    readonly_fields = ['total_countries', 'last_refreshed_at']

    def has_add_permission(self, request):
        # written by the refresh pipeline only
        return False
