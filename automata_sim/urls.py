from django.urls import path
from . import views

urlpatterns = [
    # Parse a description of any kind
    path('api/parse/', views.parse_automaton, name='parse_automaton'),

    # Run an automaton on an input and return its trace
    path('api/run/', views.run_automaton, name='run_automaton'),

    # Transformations
    path('api/minimise-dfa/', views.min_dfa, name='minimise_dfa'),
    path('api/regex-to-nfa/', views.regex_to_nfa, name='regex_to_nfa'),

    # Streamed Turing machine execution
    path('api/tm-run-stream/', views.tm_run_stream, name='tm_run_stream'),
]
