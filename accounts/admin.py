# accounts/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, Wallet, WalletTransaction, Withdrawal


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("id", "username", "full_name", "role", "status", "assigned_agent", "date_joined")
    list_filter = ("role", "status")
    search_fields = ("username", "full_name", "email", "phone")
    autocomplete_fields = ("assigned_agent",)
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Platform", {"fields": ("role", "status", "full_name", "phone", "assigned_agent", "created_by")}),
    )


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "main", "bonus", "updated_at")
    search_fields = ("user__username", "user__full_name")
    # balances only move through the ledger
    readonly_fields = ("user", "main", "bonus", "created_at", "updated_at")


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "user",
        "tx_type",
        "wallet_type",
        "amount",
        "balance_after",
        "initiator",
        "initiator_role",
        "ref",
    )
    list_filter = ("tx_type", "wallet_type", "initiator_role")
    search_fields = ("user__username", "ref", "note")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Withdrawal)
class WithdrawalAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "amount", "wallet_type", "status", "processed_by", "created_at")
    list_filter = ("status", "wallet_type")
    search_fields = ("user__username",)
    readonly_fields = ("user", "amount", "wallet_type", "status", "processed_by")
