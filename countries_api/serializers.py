from rest_framework import serializers
from .models import Country


class CountrySerializer(serializers.ModelSerializer):
    """
    Serializer for Country model with all fields
    """
    class Meta:
        model = Country
        fields = [
            'id',
            'name',
            'capital',
            'region',
            'population',
            'currency_code',
            'exchange_rate',
            'estimated_gdp',
            'flag_url',
            'last_refreshed_at'
        ]
        read_only_fields = fields


class StatusResponseSerializer(serializers.Serializer):
    """
    Serializer for status endpoint response
    """
    total_countries = serializers.IntegerField()
    last_refreshed_at = serializers.DateTimeField(allow_null=True)


class ErrorResponseSerializer(serializers.Serializer):
    """
    Serializer for error responses
    """
    error = serializers.CharField()
    # details is either a message or a field -> message mapping
    details = serializers.JSONField(required=False)


class RefreshResponseSerializer(serializers.Serializer):
    """
    Serializer for refresh endpoint response
    """
    message = serializers.CharField()
    total_countries = serializers.IntegerField()
    last_refreshed_at = serializers.DateTimeField()
