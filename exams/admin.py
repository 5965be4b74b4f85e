from django.contrib import admin

from .models import Answer, Candidate, Contact, Question, Test, TestCategory, TestResult


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = ['order', 'question_type', 'category', 'instruction', 'max_score']


class AnswerInline(admin.TabularInline):
    model = Answer
    extra = 0
    readonly_fields = ['position', 'question_id', 'text', 'score', 'comment', 'answered_at']
    can_delete = False


@admin.register(TestCategory)
class TestCategoryAdmin(admin.ModelAdmin):
    list_display = ['name']
    search_fields = ['name']


@admin.register(Test)
class TestAdmin(admin.ModelAdmin):
    list_display = ['title', 'state', 'duration', 'passing_score', 'get_question_count', 'get_max_score', 'created_at']
    list_filter = ['state']
    search_fields = ['title', 'description']
    inlines = [QuestionInline]
    readonly_fields = ['created_at', 'updated_at']

    def get_question_count(self, obj):
        return obj.get_question_count()
    get_question_count.short_description = 'Questions'


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['test', 'order', 'question_type', 'category', 'max_score']
    list_filter = ['question_type', 'test', 'category']
    search_fields = ['instruction']
    ordering = ['test', 'order']


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ['firstname', 'lastname', 'email', 'city']
    search_fields = ['firstname', 'lastname', 'email']


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ['contact', 'experience_level', 'years_of_experience']
    list_filter = ['experience_level']


@admin.register(TestResult)
class TestResultAdmin(admin.ModelAdmin):
    list_display = ['id', 'test', 'candidate', 'state', 'score', 'start_time', 'corrected_at']
    list_filter = ['state', 'test']
    inlines = [AnswerInline]
    readonly_fields = ['score', 'scores_by_category', 'start_time', 'end_time', 'corrected_at', 'created_at']
    actions = ['recorrect']

    @admin.action(description='Correct selected results again')
    def recorrect(self, request, queryset):
        from .signals import correction_requested
        for result in queryset:
            correction_requested.send(sender=TestResult, result_id=result.pk)
        self.message_user(request, f"Correction requested for {queryset.count()} result(s).")
