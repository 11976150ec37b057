from django.urls import path
from . import views

urlpatterns = [
    # Tasks
    path('tasks/', views.task_list, name='task_list'),
    path('tasks/<int:pk>/history/', views.task_history, name='task_history'),

    # Review
    path('tasks/<int:pk>/review/', views.review_session, name='review_session'),
    path('tasks/<int:pk>/review/next/', views.review_next, name='review_next'),

    # API
    path('api/tasks/<int:pk>/', views.api_task_state, name='api_task_state'),
    path('api/items/<int:pk>/answer/', views.answer_item, name='answer_item'),
]
