# games/models.py
from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F
from django.utils import timezone

MIN_NUMBER = 1
MAX_NUMBER = 12


class GameQuerySet(models.QuerySet):
    def open(self):
        return self.filter(status=Game.STATUS_OPEN)

    def due_for_settlement(self, now=None):
        now = now or timezone.now()
        cutoff = now - timedelta(minutes=settings.SETTLEMENT_CUTOFF_MINUTES)
        return self.open().filter(time_window__lte=cutoff).order_by("time_window", "id")

    def finalize(self, game_id: int, result_number: int | None, mode: str) -> bool:
        """
        open -> result as one conditional UPDATE.
        Returns False when another caller already moved the game out of `open`.
        """
        updated = self.filter(pk=game_id, status=Game.STATUS_OPEN).update(
            status=Game.STATUS_RESULT,
            result_number=result_number,
            settlement_mode=mode,
            settled_at=timezone.now(),
            updated_at=timezone.now(),
        )
        return updated == 1

    def add_to_pool(self, game_id: int, amount: int) -> int:
        return self.filter(pk=game_id).update(total_pool=F("total_pool") + int(amount), updated_at=timezone.now())


class Game(models.Model):
    STATUS_OPEN = "open"
    STATUS_RESULT = "result"
    STATUS_CHOICES = (
        (STATUS_OPEN, "Open"),
        (STATUS_RESULT, "Result"),
    )
    MODE_CHOICES = (
        ("auto", "Automatic"),
        ("override", "Manual override"),
        ("declared", "Declared by admin"),
        ("none", "No winner"),
    )

    # canonical start of the betting window
    time_window = models.DateTimeField(unique=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_OPEN, db_index=True)
    total_pool = models.BigIntegerField(default=0)
    result_number = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(MIN_NUMBER), MaxValueValidator(MAX_NUMBER)],
    )

    settlement_mode = models.CharField(max_length=10, choices=MODE_CHOICES, blank=True, default="")
    settled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = GameQuerySet.as_manager()

    class Meta:
        ordering = ("-time_window", "-id")

    def is_open(self) -> bool:
        return self.status == self.STATUS_OPEN

    def window_end(self):
        return self.time_window + timedelta(minutes=settings.GAME_WINDOW_MINUTES)

    def settlement_due_at(self):
        return self.time_window + timedelta(minutes=settings.SETTLEMENT_CUTOFF_MINUTES)

    def accepts_bids(self, now=None) -> bool:
        if not self.is_open():
            return False
        if not settings.BID_WINDOW_ENFORCED:
            return True
        return (now or timezone.now()) < self.settlement_due_at()

    def as_dict(self) -> dict:
        return {
            "id": self.pk,
            "time_window": self.time_window.isoformat(),
            "status": self.status,
            "total_pool": self.total_pool,
            "result_number": self.result_number,
            "settlement_mode": self.settlement_mode,
        }

    def __str__(self):
        return f"Game#{self.pk} {self.time_window:%Y-%m-%d %H:%M} {self.status} pool={self.total_pool}"


class ManualOverride(models.Model):
    KIND_OVERRIDE = "override"
    KIND_AUDIT = "audit"
    KIND_CHOICES = (
        (KIND_OVERRIDE, "Override"),
        # written by declare_winner, never drives settlement
        (KIND_AUDIT, "Audit note"),
    )

    game = models.ForeignKey(Game, on_delete=models.CASCADE, related_name="overrides")
    kind = models.CharField(max_length=10, choices=KIND_CHOICES, default=KIND_OVERRIDE)
    winner_number = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(MIN_NUMBER), MaxValueValidator(MAX_NUMBER)],
    )
    manual_winners = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name="+")
    payout_multiplier = models.PositiveSmallIntegerField(null=True, blank=True)
    note = models.CharField(max_length=500, blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("created_at", "id")
        indexes = [models.Index(fields=["game", "kind"])]

    def effective_multiplier(self) -> int:
        return self.payout_multiplier or settings.OVERRIDE_DEFAULT_MULTIPLIER

    def __str__(self):
        return f"{self.kind} game#{self.game_id} number={self.winner_number}"
