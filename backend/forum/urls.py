"""
URL configuration for the Forum API.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import ThreadViewSet, CommentViewSet, VoteView

router = DefaultRouter()
router.register(r'threads', ThreadViewSet, basename='thread')
router.register(r'comments', CommentViewSet, basename='comment')

urlpatterns = [
    path('', include(router.urls)),
    path('vote/', VoteView.as_view(), name='vote'),

    # Credentials are issued by simplejwt; the forum only consumes them
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
