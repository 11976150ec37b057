from django.contrib import admin
from .models import (
    AnswerLog,
    StudentTask,
    StudentTaskItem,
    Workbook,
    WorkbookChoice,
    WorkbookItem,
    WorkbookShortField,
)


class WorkbookItemInline(admin.TabularInline):
    model = WorkbookItem
    extra = 1
    fields = ['position', 'prompt', 'answer_type']


class WorkbookChoiceInline(admin.TabularInline):
    model = WorkbookChoice
    extra = 1
    fields = ['position', 'label', 'content', 'is_correct']


class WorkbookShortFieldInline(admin.TabularInline):
    model = WorkbookShortField
    extra = 1
    fields = ['position', 'label', 'answer']


class StudentTaskItemInline(admin.TabularInline):
    model = StudentTaskItem
    extra = 0
    fields = ['workbook_item', 'streak', 'next_review_at', 'completed_at', 'last_result']
    readonly_fields = ['workbook_item', 'streak', 'next_review_at', 'completed_at', 'last_result']
    can_delete = False


@admin.register(Workbook)
class WorkbookAdmin(admin.ModelAdmin):
    list_display = ['title', 'subject', 'author', 'item_count', 'created_at']
    list_filter = ['subject', 'created_at']
    search_fields = ['title', 'description']
    inlines = [WorkbookItemInline]

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'


@admin.register(WorkbookItem)
class WorkbookItemAdmin(admin.ModelAdmin):
    list_display = ['prompt_preview', 'workbook', 'position', 'answer_type']
    list_filter = ['workbook', 'answer_type']
    search_fields = ['prompt']
    inlines = [WorkbookChoiceInline, WorkbookShortFieldInline]

    def prompt_preview(self, obj):
        return obj.prompt[:50] + '...' if len(obj.prompt) > 50 else obj.prompt
    prompt_preview.short_description = 'Prompt'


@admin.register(StudentTask)
class StudentTaskAdmin(admin.ModelAdmin):
    list_display = ['workbook', 'student', 'status', 'due_at', 'completion_at']
    list_filter = ['status', 'workbook']
    readonly_fields = ['completion_at']
    inlines = [StudentTaskItemInline]


@admin.register(AnswerLog)
class AnswerLogAdmin(admin.ModelAdmin):
    list_display = ['item', 'is_correct', 'streak_before', 'streak_after', 'answered_at']
    list_filter = ['is_correct', 'answered_at']
    readonly_fields = ['item', 'answer', 'is_correct', 'streak_before', 'streak_after',
                       'next_review_at', 'completed_at', 'answered_at']
