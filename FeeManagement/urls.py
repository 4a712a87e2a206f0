from django.urls import path
from . import views

app_name = 'fees'

urlpatterns = [
    # Fee setup
    path('', views.fee_list, name='fee_list'),
    path('<int:pk>/edit/', views.fee_edit, name='fee_edit'),
    path('<int:pk>/delete/', views.fee_delete, name='fee_delete'),

    # Payments
    path('payments/', views.payment_list, name='payment_list'),
    path('payments/<int:pk>/', views.payment_detail, name='payment_detail'),
    path('payments/record/', views.payment_record, name='payment_record'),
    path('payments/<int:pk>/verify/', views.payment_verify, name='payment_verify'),
    path('payments/export/', views.payments_export, name='payments_export'),
    path('payments/<int:pk>/receipt/', views.payment_receipt, name='payment_receipt'),
    path('paystack/test/', views.paystack_test, name='paystack_test'),

    # Student
    path('my-fees/', views.my_fees, name='my_fees'),
    path('my-fees/<int:fee_id>/pay/', views.pay_fee, name='pay_fee'),
    path('my-fees/callback/', views.payment_callback, name='payment_callback'),
    path('my-fees/history/', views.payment_history, name='payment_history'),

    path('webhook/paystack/', views.paystack_webhook, name='paystack_webhook'),
]
