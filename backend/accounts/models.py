from django.conf import settings
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.db.models.functions import Lower
from django.utils.translation import gettext_lazy as _


class UserManager(BaseUserManager):
    use_in_migrations = True

    def normalize_email(self, email):
        return (email or "").strip().lower()

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("The given email must be set")
        email = self.normalize_email(email)
        extra_fields.setdefault("status", User.initial_status_for(extra_fields.get("role", User.Role.CLIENT)))
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", User.Role.ADMIN)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self._create_user(email, password, **extra_fields)

    def get_by_email(self, email):
        return self.get(email__iexact=self.normalize_email(email))


class User(AbstractUser):
    class Role(models.TextChoices):
        ADMIN = "ADMIN", _("Platform admin")
        OWNER = "OWNER", _("Tailor / seamstress")
        WORKER = "WORKER", _("Worker")
        CLIENT = "CLIENT", _("Client")

    class Status(models.TextChoices):
        PENDING = "PENDING", _("Pending approval")
        APPROVED = "APPROVED", _("Approved")
        ACTIVE = "ACTIVE", _("Active")
        SUSPENDED = "SUSPENDED", _("Suspended")
        REJECTED = "REJECTED", _("Rejected")

    username = None
    email = models.EmailField("email address", unique=True)
    name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.CLIENT)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["name"]

    objects = UserManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(Lower("email"), name="accounts_user_email_ci_unique"),
        ]

    def __str__(self):
        return self.email

    @staticmethod
    def initial_status_for(role: str) -> str:
        """Owners wait for admin approval; everybody else starts active."""
        if role == User.Role.OWNER:
            return User.Status.PENDING
        return User.Status.ACTIVE

    @property
    def can_sign_in(self) -> bool:
        return self.is_active and self.status in (User.Status.APPROVED, User.Status.ACTIVE)

    @property
    def is_platform_admin(self) -> bool:
        return self.role == User.Role.ADMIN

    @property
    def is_owner_eligible(self) -> bool:
        # Roles that invitation acceptance must never demote.
        return self.role in (User.Role.ADMIN, User.Role.OWNER)

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]


class Organization(models.Model):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_organizations",
    )
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=60, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Organization")
        verbose_name_plural = _("Organizations")
        ordering = ("created_at", "id")

    def __str__(self):
        return self.name

    def is_owned_by(self, user) -> bool:
        return user is not None and self.owner_id == user.pk


class OrganizationMembership(models.Model):
    """
    A non-owner's access to one organization.

    Owners never need a row here: ownership itself is the grant.
    ``permissions`` holds the explicit grants, kept sorted and unique.
    """

    class Role(models.TextChoices):
        MANAGER = "MANAGER", _("Manager")
        SENIOR = "SENIOR", _("Senior")
        WORKER = "WORKER", _("Worker")
        APPRENTICE = "APPRENTICE", _("Apprentice")

    # Trusted with the owner's operational breadth.
    MANAGER_ROLES = frozenset({Role.MANAGER})

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.WORKER)
    permissions = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "user"],
                name="accounts_membership_org_user_unique",
            ),
        ]
        ordering = ("created_at", "id")

    def __str__(self):
        return f"{self.user} @ {self.organization} ({self.role})"

    @property
    def permission_set(self) -> frozenset:
        return frozenset(self.permissions or ())

    @property
    def is_manager(self) -> bool:
        return self.role in self.MANAGER_ROLES

    def set_permissions(self, codes) -> None:
        self.permissions = sorted(set(codes))
