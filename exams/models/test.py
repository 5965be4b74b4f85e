from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator


class TestCategory(models.Model):
    name = models.CharField(max_length=200, unique=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'test categories'

    def __str__(self):
        return self.name


class Test(models.Model):
    class State(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        PUBLISHED = 'published', 'Published'
        ARCHIVED = 'archived', 'Archived'

    title = models.CharField(max_length=300)
    description = models.TextField(blank=True)
    state = models.CharField(
        max_length=20,
        choices=State.choices,
        default=State.DRAFT,
        db_index=True
    )
    duration = models.PositiveIntegerField(null=True, blank=True, help_text="Duration in minutes")
    passing_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['state', 'created_at']),
        ]

    def __str__(self):
        return self.title

    def get_max_score(self):
        return self.questions.aggregate(total=models.Sum('max_score'))['total'] or 0

    def get_question_count(self):
        return self.questions.count()
