from django.urls import path

from . import views

urlpatterns = [
    path("stations/", views.station_list, name="station_list"),
    path("stations/save/", views.station_save, name="station_save"),
    path("stations/delete/", views.station_delete, name="station_delete"),
    path(
        "stations/radius-credentials/",
        views.radius_credentials,
        name="radius_credentials",
    ),
    path(
        "stations/migrate-system-basis/",
        views.migrate_system_basis,
        name="migrate_system_basis",
    ),
]
