"""
Accounts Views

Token login / logout and the current-user endpoint. Users and roles are
Django auth users and groups, managed through the admin.
"""

import logging

from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema, OpenApiResponse

from .serializers import LoginSerializer, UserSerializer

logger = logging.getLogger(__name__)


class LoginView(APIView):
    """Exchange username/password for an API token"""
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Login",
        request=LoginSerializer,
        responses={200: OpenApiResponse(description="Token and user")},
        tags=['Auth']
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']
        token, _ = Token.objects.get_or_create(user=user)
        logger.info(f"User {user.username} logged in")
        return Response({
            'success': True,
            'data': {
                'token': token.key,
                'user': UserSerializer(user).data
            }
        })


class LogoutView(APIView):
    """Revoke the caller's API token"""
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Logout", request=None, tags=['Auth'])
    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return Response({
            'success': True,
            'message': 'Logged out'
        }, status=status.HTTP_200_OK)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Current user", responses=UserSerializer, tags=['Auth'])
    def get(self, request):
        return Response({
            'success': True,
            'data': UserSerializer(request.user).data
        })
