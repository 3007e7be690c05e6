from whatsapp_reminder.models.reminder_entry import ReminderEntryRow

__all__ = ["ReminderEntryRow"]
