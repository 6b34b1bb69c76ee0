from django.contrib import admin
from django.utils.html import format_html

from .models import Expense, ExpenseBeneficiary, Settlement, SettlementStatus, MemberBalance
from .services import recalculate_settlements


class ExpenseBeneficiaryInline(admin.TabularInline):
    """Inline admin for the shares of an expense."""
    model = ExpenseBeneficiary
    extra = 0
    fields = ['position', 'user', 'share']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        """Shares are written by the expense service."""
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    """
    Admin interface for Expenses.

    Read-only: ledger writes go through the API so settlements stay in
    sync. The recalculate action rebuilds settlements of the selected
    expenses' groups.
    """

    list_display = ['title', 'group', 'paid_by', 'amount', 'is_even_split', 'created_at']
    list_filter = ['is_even_split', 'group', 'created_at']
    search_fields = ['title', 'group__name', 'paid_by__email', 'paid_by__display_name']
    readonly_fields = [
        'group',
        'paid_by',
        'title',
        'amount',
        'is_even_split',
        'phone_number',
        'bank_account',
        'created_at',
        'updated_at',
    ]
    inlines = [ExpenseBeneficiaryInline]
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    actions = ['recalculate_group_settlements']

    @admin.action(description='Recalculate settlements of selected groups')
    def recalculate_group_settlements(self, request, queryset):
        group_ids = set(queryset.values_list('group_id', flat=True))
        for group_id in group_ids:
            recalculate_settlements(group_id)
        self.message_user(request, f'Recalculated settlements for {len(group_ids)} group(s).')

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('group', 'paid_by')


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    """Admin interface for Settlements."""

    list_display = ['debtor', 'creditor', 'amount', 'status_badge', 'group', 'paid_at', 'updated_at']
    list_filter = ['status', 'group', 'created_at', 'paid_at']
    search_fields = ['debtor__email', 'creditor__email', 'group__name']
    readonly_fields = [
        'group',
        'debtor',
        'creditor',
        'amount',
        'status',
        'paid_at',
        'paid_by',
        'created_at',
        'updated_at',
    ]
    ordering = ['-updated_at']

    def status_badge(self, obj):
        """Display settlement status as colored badge."""
        colors = {
            SettlementStatus.PENDING: ('#E5C49A', '#2C1810'),
            SettlementStatus.PAID: ('#6B8E5E', 'white'),
        }
        bg, fg = colors.get(obj.status, ('#ccc', '#666'))
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, obj.get_status_display()
        )
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    actions = ['mark_as_paid']

    @admin.action(description='Mark selected as PAID')
    def mark_as_paid(self, request, queryset):
        """Mark selected pending settlements as paid."""
        count = 0
        for settlement in queryset.filter(status=SettlementStatus.PENDING):
            settlement.mark_paid(paid_by_user=request.user)
            count += 1
        self.message_user(request, f'Marked {count} settlement(s) as paid.')

    def has_add_permission(self, request):
        """Disable adding settlements manually - they're created by the engine."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Paid rows are history; pending rows belong to the engine."""
        return False

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('group', 'debtor', 'creditor', 'paid_by')


@admin.register(MemberBalance)
class MemberBalanceAdmin(admin.ModelAdmin):
    list_display = ['user', 'group', 'amount', 'updated_at']
    list_filter = ['group']
    search_fields = ['user__email', 'group__name']
    readonly_fields = ['group', 'user', 'amount', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        """The cache is rebuilt by a full recalculation, never edited by hand."""
        return False
