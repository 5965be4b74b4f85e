from django.db import models


class Answer(models.Model):
    result = models.ForeignKey(
        'TestResult',
        on_delete=models.CASCADE,
        related_name='answers',
        db_index=True
    )
    # Plain reference: deleting a question must leave the answer in place.
    question = models.ForeignKey(
        'Question',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='+'
    )
    position = models.PositiveIntegerField(default=0)
    text = models.TextField(blank=True)
    score = models.FloatField(default=0)
    comment = models.TextField(blank=True)
    answered_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['position', 'id']
        indexes = [
            models.Index(fields=['result', 'position']),
        ]

    def __str__(self):
        return f"Answer #{self.position} to question {self.question_id} (result {self.result_id})"
