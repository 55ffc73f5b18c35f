import django_filters

from .models import Country


class CountryFilter(django_filters.FilterSet):
    """Exact-match filters for GET /countries, AND-combined."""
    region = django_filters.CharFilter(field_name='region', lookup_expr='exact')
    currency = django_filters.CharFilter(field_name='currency_code', lookup_expr='exact')

    class Meta:
        model = Country
        fields = ['region', 'currency']
