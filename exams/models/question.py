from django.db import models
from django.core.validators import MinValueValidator


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MULTIPLE_CHOICE = 'MCQ', 'Multiple Choice'
        FREE_TEXT = 'free question', 'Free Text'
        EXERCISE = 'exercice', 'Exercise'

    class TextType(models.TextChoices):
        TEXT = 'text', 'Text'
        CODE = 'code', 'Code'

    test = models.ForeignKey(
        'Test',
        on_delete=models.CASCADE,
        related_name='questions',
        db_index=True
    )
    category = models.ForeignKey(
        'TestCategory',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='questions'
    )
    question_type = models.CharField(
        max_length=20,
        choices=QuestionType.choices,
        db_index=True
    )
    instruction = models.TextField()
    max_score = models.FloatField(default=1.0, validators=[MinValueValidator(0)])
    order = models.PositiveIntegerField(default=0)
    # [{"text": "Paris", "valid": true}, ...]
    options = models.JSONField(default=list, blank=True)
    time = models.PositiveIntegerField(default=0, help_text="Time allowed in seconds")
    text_type = models.CharField(max_length=10, choices=TextType.choices, default=TextType.TEXT)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order', 'id']
        indexes = [
            models.Index(fields=['test', 'order']),
        ]

    def __str__(self):
        return f"Q{self.order}: {self.instruction[:50]}..."

    @property
    def is_multiple_choice(self):
        return self.question_type == self.QuestionType.MULTIPLE_CHOICE

    @property
    def valid_options(self):
        return [option for option in (self.options or []) if option.get('valid')]
