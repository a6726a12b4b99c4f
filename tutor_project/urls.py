from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Exam attempt API
    path('api/', include('tutor_project.exams.urls')),
]
