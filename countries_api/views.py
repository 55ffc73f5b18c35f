import logging
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response
from django.http import FileResponse
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from .config import RefreshConfig
from .exceptions import (
    CountryNotFound,
    ExternalSourceUnavailable,
    InvalidSortParameter,
    PersistenceFailure,
    RefreshInProgress,
)
from .serializers import (
    CountrySerializer,
    StatusResponseSerializer,
    ErrorResponseSerializer,
    RefreshResponseSerializer,
)
from .utils import get_summary_image_path
from . import services

logger = logging.getLogger(__name__)


def _internal_error():
    return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _not_found(exc):
    return Response({
        'error': 'Country not found',
        'details': str(exc),
    }, status=status.HTTP_404_NOT_FOUND)


@swagger_auto_schema(
    method='post',
    operation_description='Fetch all countries and exchange rates, then cache them in the database',
    responses={
        200: RefreshResponseSerializer,
        409: ErrorResponseSerializer,
        500: ErrorResponseSerializer,
        503: ErrorResponseSerializer,
    },
    tags=['Countries']
)
@api_view(['POST'])
def refresh_countries(request):
    """
    POST /countries/refresh
    Fetch all countries and exchange rates, then cache them in the database
    """
    try:
        result = services.get_refresher().refresh()
    except RefreshInProgress:
        return Response({'error': 'Refresh already in progress'}, status=status.HTTP_409_CONFLICT)
    except ExternalSourceUnavailable as e:
        return Response({
            'error': 'External data source unavailable',
            'details': str(e),
        }, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    except PersistenceFailure as e:
        return Response({
            'error': 'Database update failed',
            'details': str(e),
        }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception as e:
        logger.exception("Unexpected error in refresh_countries view: %s", e)
        return _internal_error()

    serializer = RefreshResponseSerializer({
        'message': result.message,
        'total_countries': result.total_countries,
        'last_refreshed_at': result.last_refreshed_at,
    })
    return Response(serializer.data, status=status.HTTP_200_OK)


@swagger_auto_schema(
    method='get',
    operation_description='Get all countries from the database with optional filters and sorting',
    manual_parameters=[
        openapi.Parameter(
            'region',
            openapi.IN_QUERY,
            description='Filter by region (exact match, e.g. Africa)',
            type=openapi.TYPE_STRING
        ),
        openapi.Parameter(
            'currency',
            openapi.IN_QUERY,
            description='Filter by currency code (exact match, e.g. NGN)',
            type=openapi.TYPE_STRING
        ),
        openapi.Parameter(
            'sort',
            openapi.IN_QUERY,
            description='<field>_<asc|desc> where field is gdp, name, population or exchange_rate',
            type=openapi.TYPE_STRING
        ),
    ],
    responses={
        200: CountrySerializer(many=True),
        400: ErrorResponseSerializer
    },
    tags=['Countries']
)
@api_view(['GET'])
def get_countries(request):
    """
    GET /countries
    Get all countries from the database with optional filters and sorting
    """
    try:
        queryset = services.filter_countries(
            region=request.query_params.get('region') or None,
            currency=request.query_params.get('currency') or None,
            sort=request.query_params.get('sort') or None,
        )
        serializer = CountrySerializer(queryset, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)
    except InvalidSortParameter as e:
        return Response({
            'error': 'Validation failed',
            'details': {'sort': str(e)},
        }, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.exception("Unexpected error in get_countries view: %s", e)
        return _internal_error()


@swagger_auto_schema(
    method='get',
    operation_description='Get a single country by name (case-insensitive)',
    responses={
        200: CountrySerializer,
        404: ErrorResponseSerializer
    },
    tags=['Countries']
)
@swagger_auto_schema(
    method='delete',
    operation_description='Delete a country record by name (case-insensitive)',
    responses={
        204: 'Country deleted',
        404: ErrorResponseSerializer
    },
    tags=['Countries']
)
@api_view(['GET', 'DELETE'])
def country_detail(request, name):
    """
    GET /countries/:name
    DELETE /countries/:name
    """
    try:
        if request.method == 'GET':
            country = services.get_country_by_name(name)
            return Response(CountrySerializer(country).data, status=status.HTTP_200_OK)

        services.delete_country_by_name(name)
        return Response(status=status.HTTP_204_NO_CONTENT)
    except CountryNotFound as e:
        return _not_found(e)
    except Exception as e:
        logger.exception("Unexpected error in country_detail view: %s", e)
        return _internal_error()


@swagger_auto_schema(
    method='get',
    operation_description='Show total countries and last refresh timestamp',
    responses={
        200: StatusResponseSerializer,
    },
    tags=['Countries']
)
@api_view(['GET'])
def get_status(request):
    """
    GET /status
    Show total countries and last refresh timestamp
    """
    try:
        serializer = StatusResponseSerializer(services.get_status_summary())
        return Response(serializer.data, status=status.HTTP_200_OK)
    except Exception as e:
        logger.exception("Unexpected error in get_status view: %s", e)
        return _internal_error()


@swagger_auto_schema(
    method='get',
    operation_description='Serve the generated summary image',
    responses={
        200: openapi.Response(
            description='Summary image',
            schema=openapi.Schema(
                type=openapi.TYPE_FILE
            )
        ),
        404: ErrorResponseSerializer
    },
    tags=['Countries']
)
@api_view(['GET'])
def get_summary_image(request):
    """
    GET /countries/image
    Serve the generated summary image
    """
    image_path = get_summary_image_path(RefreshConfig.from_settings().summary_image_path)

    if image_path is None:
        return Response({
            'error': 'Summary image not found'
        }, status=status.HTTP_404_NOT_FOUND)

    return FileResponse(
        open(image_path, 'rb'),
        content_type='image/png',
        as_attachment=False,
        filename='summary.png'
    )
