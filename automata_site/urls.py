from django.urls import include, path

urlpatterns = [
    path('', include('automata_sim.urls')),
]
