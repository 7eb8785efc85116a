from django.urls import path

from . import views

app_name = "mail_sync"

urlpatterns = [
    path("sync/", views.SyncView.as_view(), name="sync"),
    path("send/", views.SendView.as_view(), name="send"),
    path("select/", views.SelectView.as_view(), name="select"),
    path("accounts/", views.AccountListView.as_view(), name="account-list"),
    path(
        "accounts/test-connection/",
        views.TestConnectionView.as_view(),
        name="test-connection",
    ),
    path(
        "accounts/<str:account_id>/",
        views.AccountDetailView.as_view(),
        name="account-detail",
    ),
]
