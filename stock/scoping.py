from django.conf import settings
from django.db import models


class CompanyQuerySet(models.QuerySet):
    def for_company(self, company_id):
        return self.filter(company_id=company_id)

    def active(self):
        return self.filter(is_active=True)


class CompanyManager(models.Manager):
    def get_queryset(self):
        return CompanyQuerySet(self.model, using=self._db)

    def for_company(self, company_id):
        return self.get_queryset().for_company(company_id)

    def active(self):
        return self.get_queryset().active()


class CompanyScopedMixin(models.Model):
    """
    Row-level tenant scope. Every business record belongs to one company.
    """

    company_id = models.CharField(
        max_length=50,
        blank=True,
        default='',
        db_index=True,
        help_text="Company that owns this record"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CompanyManager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self.company_id:
            self.company_id = getattr(settings, 'DEFAULT_COMPANY_ID', '')
        super().save(*args, **kwargs)
