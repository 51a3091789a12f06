# betting/admin.py
from django.contrib import admin

from .models import Bid, CommissionSettings, Counter


@admin.register(Bid)
class BidAdmin(admin.ModelAdmin):
    list_display = (
        "sequence",
        "user",
        "game",
        "number",
        "amount",
        "created_at",
    )
    list_filter = ("number", "created_at")
    search_fields = ("user__username", "user__full_name", "game__id")
    readonly_fields = ("sequence",)

    # bids only enter through place_bid, which debits the stake and grows the pool
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CommissionSettings)
class CommissionSettingsAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "agent_commission_percentage",
        "winner_payout_percentage",
        "admin_fee_percentage",
        "min_bet_amount",
        "max_bet_amount",
        "updated_by",
        "created_at",
    )

    # history is append-only: new rows only
    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Counter)
class CounterAdmin(admin.ModelAdmin):
    list_display = ("name", "sequence")
    readonly_fields = ("name", "sequence")
