from django.urls import path
from . import views

urlpatterns = [
    path('vat/daily', views.DailyZReportView.as_view(), name='vat_daily_report'),
    path('vat/monthly', views.MonthlyVatReportView.as_view(), name='vat_monthly_report'),
]
