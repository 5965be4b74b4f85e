from django.db import models


class Contact(models.Model):
    firstname = models.CharField(max_length=150)
    lastname = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True)
    city = models.CharField(max_length=150, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['lastname', 'firstname']

    def __str__(self):
        return f"{self.firstname} {self.lastname} <{self.email}>"


class Candidate(models.Model):
    class ExperienceLevel(models.TextChoices):
        JUNIOR = 'JUNIOR', 'Junior'
        INTERMEDIATE = 'INTERMEDIATE', 'Intermediate'
        SENIOR = 'SENIOR', 'Senior'
        EXPERT = 'EXPERT', 'Expert'

    contact = models.ForeignKey(
        'Contact',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='candidates'
    )
    experience_level = models.CharField(
        max_length=20,
        choices=ExperienceLevel.choices,
        default=ExperienceLevel.JUNIOR
    )
    years_of_experience = models.PositiveIntegerField(default=0)
    skills = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return str(self.contact) if self.contact_id else f"Candidate #{self.pk}"
