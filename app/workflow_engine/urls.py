from django.urls import path

from workflow_engine import views

app_name = 'workflow_engine'

urlpatterns = [
    path('trigger/', views.trigger_api, name='trigger'),
    path('approval/', views.approval_api, name='approval'),
    path('approvals/pending/', views.pending_approvals_api, name='pending-approvals'),
    path('instances/<uuid:instance_id>/', views.instance_detail_api, name='instance-detail'),
]
