# betting/models.py
from __future__ import annotations

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from games.models import MAX_NUMBER, MIN_NUMBER, Game


class Counter(models.Model):
    name = models.CharField(max_length=50, unique=True)
    sequence = models.BigIntegerField(default=0)

    @classmethod
    def next_value(cls, name: str) -> int:
        """
        Atomic increment; must run inside transaction.atomic().
        The first value handed out for a new name is 1.
        """
        cls.objects.get_or_create(name=name)
        counter = cls.objects.select_for_update().get(name=name)
        cls.objects.filter(pk=counter.pk).update(sequence=F("sequence") + 1)
        counter.refresh_from_db(fields=["sequence"])
        return counter.sequence

    def __str__(self):
        return f"{self.name}={self.sequence}"


class Bid(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bids",
    )
    game = models.ForeignKey(
        Game,
        on_delete=models.CASCADE,
        related_name="bids",
    )
    number = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(MIN_NUMBER), MaxValueValidator(MAX_NUMBER)],
    )
    amount = models.BigIntegerField()
    # global display/audit order, never used by settlement
    sequence = models.BigIntegerField(unique=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("sequence",)
        indexes = [
            models.Index(fields=["game", "number"]),
            models.Index(fields=["user", "created_at"]),
        ]

    def as_dict(self) -> dict:
        return {
            "id": self.pk,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "number": self.number,
            "amount": self.amount,
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat(),
        }

    def __str__(self) -> str:
        return f"Bid#{self.sequence} user={self.user_id} game={self.game_id} number={self.number} amount={self.amount}"


class CommissionSettingsQuerySet(models.QuerySet):
    def current(self):
        return self.order_by("-created_at", "-id").first()


class CommissionSettings(models.Model):
    """Append-only; a change is a new row and the newest row is in force."""

    agent_commission_percentage = models.PositiveSmallIntegerField(
        default=5, validators=[MaxValueValidator(100)]
    )
    winner_payout_percentage = models.PositiveSmallIntegerField(
        default=80, validators=[MaxValueValidator(100)]
    )
    admin_fee_percentage = models.PositiveSmallIntegerField(
        default=15, validators=[MaxValueValidator(100)]
    )
    min_bet_amount = models.BigIntegerField(default=10, validators=[MinValueValidator(1)])
    max_bet_amount = models.BigIntegerField(default=10000, validators=[MinValueValidator(1)])
    updated_by = models.CharField(max_length=120)

    created_at = models.DateTimeField(default=timezone.now)

    objects = CommissionSettingsQuerySet.as_manager()

    class Meta:
        verbose_name_plural = "commission settings"
        ordering = ("-created_at", "-id")
        constraints = [
            models.CheckConstraint(
                condition=Q(
                    agent_commission_percentage__lte=100
                    - F("winner_payout_percentage")
                    - F("admin_fee_percentage")
                ),
                name="commission_total_at_most_100",
            ),
        ]

    @property
    def total_percentage(self) -> int:
        return self.agent_commission_percentage + self.winner_payout_percentage + self.admin_fee_percentage

    def as_dict(self) -> dict:
        return {
            "id": self.pk,
            "agent_commission_percentage": self.agent_commission_percentage,
            "winner_payout_percentage": self.winner_payout_percentage,
            "admin_fee_percentage": self.admin_fee_percentage,
            "min_bet_amount": self.min_bet_amount,
            "max_bet_amount": self.max_bet_amount,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat(),
        }

    def __str__(self):
        return (
            f"agent={self.agent_commission_percentage}% winner={self.winner_payout_percentage}% "
            f"admin={self.admin_fee_percentage}% ({self.created_at:%Y-%m-%d %H:%M})"
        )
