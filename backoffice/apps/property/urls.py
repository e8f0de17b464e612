"""
Property Management URLs - PDC JSON API
"""
from django.urls import path
from . import views

app_name = 'property'

urlpatterns = [
    # Payment schedule
    path('api/schedule/preview/', views.api_schedule_preview, name='api_schedule_preview'),
    path('api/schedule/register/', views.api_register_schedule, name='api_register_schedule'),

    # PDC register
    path('api/pdcs/', views.api_pdc_list, name='api_pdc_list'),
    path('api/pdcs/register/', views.api_pdc_register, name='api_pdc_register'),
    path('api/pdcs/bulk/', views.api_pdc_bulk_register, name='api_pdc_bulk_register'),
    path('api/pdcs/<int:pk>/', views.api_pdc_detail, name='api_pdc_detail'),

    # Transitions
    path('api/pdcs/<int:pk>/deposit/', views.api_pdc_deposit, name='api_pdc_deposit'),
    path('api/pdcs/<int:pk>/clear/', views.api_pdc_clear, name='api_pdc_clear'),
    path('api/pdcs/<int:pk>/bounce/', views.api_pdc_bounce, name='api_pdc_bounce'),
    path('api/pdcs/<int:pk>/replace/', views.api_pdc_replace, name='api_pdc_replace'),
    path('api/pdcs/<int:pk>/withdraw/', views.api_pdc_withdraw, name='api_pdc_withdraw'),
    path('api/pdcs/<int:pk>/cancel/', views.api_pdc_cancel, name='api_pdc_cancel'),

    # Ledger & reporting
    path('api/withdrawals/', views.api_withdrawal_ledger, name='api_withdrawal_ledger'),
    path('api/dashboard/', views.api_dashboard, name='api_dashboard'),
    path('api/tenants/<int:tenant_id>/history/', views.api_tenant_history, name='api_tenant_history'),
    path('api/bank-names/', views.api_bank_names, name='api_bank_names'),
]
