"""
Mixins shared by the HMS viewsets.

Provides:
- The ``success/data`` response envelope for the standard CRUD actions
- Soft delete (``is_active=False``) for reference data
"""

from rest_framework import status
from rest_framework.response import Response
import logging

logger = logging.getLogger(__name__)


class EnvelopeResponseMixin:
    """Wrap ModelViewSet responses in ``{'success': True, 'data': ...}``."""

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())

        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            paginated = self.get_paginated_response(serializer.data).data
            return Response({
                'success': True,
                'count': paginated['count'],
                'next': paginated['next'],
                'previous': paginated['previous'],
                'data': paginated['results']
            })

        serializer = self.get_serializer(queryset, many=True)
        return Response({
            'success': True,
            'count': len(serializer.data),
            'data': serializer.data
        })

    def retrieve(self, request, *args, **kwargs):
        instance = self.get_object()
        serializer = self.get_serializer(instance)
        return Response({
            'success': True,
            'data': serializer.data
        })

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        return Response({
            'success': True,
            'message': f'{self._resource_label()} created successfully',
            'data': self.get_response_data(serializer.instance)
        }, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)
        return Response({
            'success': True,
            'message': f'{self._resource_label()} updated successfully',
            'data': self.get_response_data(serializer.instance)
        })

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        self.perform_destroy(instance)
        return Response({
            'success': True,
            'message': f'{self._resource_label()} deleted successfully'
        })

    def get_response_data(self, instance):
        """Serialize a written instance with the read serializer."""
        detail_class = getattr(self, 'detail_serializer_class', None)
        if detail_class is None:
            return self.get_serializer(instance).data
        return detail_class(instance, context=self.get_serializer_context()).data

    def _resource_label(self):
        label = getattr(self, 'resource_label', None)
        if label:
            return label
        return self.get_queryset().model._meta.verbose_name.capitalize()


class SoftDeleteMixin:
    """Deactivate instead of deleting; ``?include_inactive=true`` lists all."""

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            include_inactive = self.request.query_params.get('include_inactive', 'false')
            if include_inactive.lower() != 'true':
                queryset = queryset.filter(is_active=True)
        return queryset

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])
        logger.info(f"Deactivated {instance._meta.label} {instance.pk}")
