from django.db import models


class TestResult(models.Model):
    class State(models.TextChoices):
        PENDING = 'pending', 'Pending'
        IN_PROGRESS = 'inProgress', 'In Progress'
        FINISH = 'finish', 'Finish'

    test = models.ForeignKey(
        'Test',
        on_delete=models.CASCADE,
        related_name='results',
        db_index=True
    )
    candidate = models.ForeignKey(
        'Candidate',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='results'
    )
    state = models.CharField(
        max_length=20,
        choices=State.choices,
        default=State.PENDING,
        db_index=True
    )
    score = models.FloatField(null=True, blank=True)
    # [{"categoryId": "3", "score": 4.0, "maxScore": 5.0}, ...]
    scores_by_category = models.JSONField(default=list, blank=True)

    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    corrected_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['test', 'state']),
            models.Index(fields=['candidate', 'state']),
        ]

    def __str__(self):
        return f"{self.candidate} - {self.test.title} ({self.get_state_display()})"

    @property
    def is_finished(self):
        return self.state == self.State.FINISH
