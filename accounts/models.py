from __future__ import annotations

import uuid
from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q
from django.utils import timezone


class User(AbstractUser):
    ROLE_CHOICES = (
        ("admin", "Admin"),
        ("agent", "Agent"),
        ("user", "User"),
    )
    STATUS_CHOICES = (
        ("active", "Active"),
        ("disabled", "Disabled"),
        ("banned", "Banned"),
    )

    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default="user", db_index=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="active")
    full_name = models.CharField(max_length=120, blank=True, default="")
    phone = models.CharField(max_length=20, blank=True, default="")

    assigned_agent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="assigned_users",
        limit_choices_to={"role": "agent"},
    )
    created_by = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )

    def display_name(self) -> str:
        return self.full_name or self.username

    def __str__(self):
        return f"{self.username} ({self.role})"


class Wallet(models.Model):
    WALLET_TYPES = ("main", "bonus")

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    main = models.BigIntegerField(default=0)
    bonus = models.BigIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(main__gte=0), name="wallet_main_non_negative"),
            models.CheckConstraint(condition=Q(bonus__gte=0), name="wallet_bonus_non_negative"),
        ]

    def balance(self, wallet_type: str) -> int:
        return int(getattr(self, wallet_type))

    def as_dict(self) -> dict:
        return {"user_id": self.user_id, "main": self.main, "bonus": self.bonus}

    def __str__(self):
        return f"{self.user} main={self.main} bonus={self.bonus}"


class WalletTransaction(models.Model):
    """
    Append-only audit row; exactly one per ledger mutation.
    `amount` is always positive, `tx_type` gives the direction.
    """

    TYPE_CHOICES = (
        ("recharge", "Recharge"),
        ("debit", "Debit"),
        ("refund", "Refund"),
        ("bonus", "Bonus"),
    )
    WALLET_TYPE_CHOICES = (
        ("main", "Main"),
        ("bonus", "Bonus"),
    )
    ROLE_CHOICES = (
        ("admin", "Admin"),
        ("agent", "Agent"),
        ("user", "User"),
        ("system", "System"),
    )
    CREDIT_TYPES = ("recharge", "refund", "bonus")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet_txs")
    initiator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="initiated_txs",
    )
    initiator_role = models.CharField(max_length=10, choices=ROLE_CHOICES, default="system")
    amount = models.BigIntegerField()
    wallet_type = models.CharField(max_length=10, choices=WALLET_TYPE_CHOICES, default="main")
    tx_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    balance_after = models.BigIntegerField()
    # idempotency key; empty for ad-hoc mutations
    ref = models.CharField(max_length=128, blank=True, default="")
    note = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("-created_at",)
        indexes = [models.Index(fields=["user", "created_at"])]
        constraints = [
            models.UniqueConstraint(fields=["ref"], condition=~Q(ref=""), name="uniq_wallet_tx_ref"),
            models.CheckConstraint(condition=Q(amount__gt=0), name="wallet_tx_amount_positive"),
        ]

    @property
    def signed_amount(self) -> int:
        return self.amount if self.tx_type in self.CREDIT_TYPES else -self.amount

    def __str__(self):
        return f"{self.tx_type} {self.amount} {self.wallet_type} ({self.user})"


class Withdrawal(models.Model):
    STATUS_CHOICES = (
        ("pending", "Pending"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
        ("completed", "Completed"),
    )

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="withdrawals")
    amount = models.BigIntegerField()
    wallet_type = models.CharField(max_length=10, choices=WalletTransaction.WALLET_TYPE_CHOICES, default="main")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="pending", db_index=True)
    note = models.CharField(max_length=255, blank=True, default="")
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="processed_withdrawals",
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"Withdrawal({self.user_id}) {self.amount} {self.wallet_type} {self.status}"
