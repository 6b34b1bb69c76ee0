from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

app_name = 'settlements'

# Router for ViewSets nested under a group
router = SimpleRouter()
router.register(r'expenses', views.ExpenseViewSet, basename='expense')
router.register(r'settlements', views.SettlementViewSet, basename='settlement')

urlpatterns = [
    # Expense ViewSet routes
    # GET    /api/groups/{group_id}/expenses/        - List expenses
    # POST   /api/groups/{group_id}/expenses/        - Record expense
    # GET    /api/groups/{group_id}/expenses/{id}/   - Get expense
    # PUT    /api/groups/{group_id}/expenses/{id}/   - Edit expense (payer/admin)
    # PATCH  /api/groups/{group_id}/expenses/{id}/   - Partial edit (payer/admin)
    # DELETE /api/groups/{group_id}/expenses/{id}/   - Delete expense (payer/admin)

    # Settlement ViewSet routes
    # GET    /api/groups/{group_id}/settlements/                   - List (?status=)
    # GET    /api/groups/{group_id}/settlements/mine/              - What I owe
    # POST   /api/groups/{group_id}/settlements/recalculate/       - Full recompute (admin)
    # GET    /api/groups/{group_id}/settlements/{id}/              - Get settlement
    # POST   /api/groups/{group_id}/settlements/{id}/mark_paid/    - Confirm payment

    # Additional endpoints
    path('groups/<uuid:group_id>/credits/', views.my_credits, name='my-credits'),
    path('groups/<uuid:group_id>/balances/', views.group_balances, name='group-balances'),

    # Include router URLs
    path('groups/<uuid:group_id>/', include(router.urls)),
]
