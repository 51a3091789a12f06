from django.contrib import admin
from .models import Game, ManualOverride


class ManualOverrideInline(admin.TabularInline):
    model = ManualOverride
    extra = 0
    fields = ("kind", "winner_number", "payout_multiplier", "note", "created_by", "created_at")
    readonly_fields = fields
    can_delete = False


@admin.register(Game)
class GameAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "time_window",
        "status",
        "total_pool",
        "result_number",
        "settlement_mode",
        "settled_at",
        "updated_at",
    )
    list_filter = ("status", "settlement_mode")

    # required by BidAdmin.autocomplete_fields
    search_fields = ("id", "time_window")

    # status, pool and result only change through the betting services
    readonly_fields = ("status", "total_pool", "result_number", "settlement_mode", "settled_at")
    inlines = [ManualOverrideInline]


@admin.register(ManualOverride)
class ManualOverrideAdmin(admin.ModelAdmin):
    list_display = ("id", "game", "kind", "winner_number", "payout_multiplier", "created_by", "created_at")
    list_filter = ("kind",)
    filter_horizontal = ("manual_winners",)
