"""Review session cursor over a task's due items."""

SESSION_KEY = 'review_cursors'


class SessionCursor:
    """
    Pointer into the list of due item ids for one review session.

    Moving past the last item wraps back to the first. The cursor belongs to
    the browser session and is rebuilt whenever the due ids change.
    """

    def __init__(self, item_ids, position=0):
        self.item_ids = list(item_ids)
        if not self.item_ids or not 0 <= position < len(self.item_ids):
            position = 0
        self.position = position

    @property
    def current(self):
        if not self.item_ids:
            return None
        return self.item_ids[self.position]

    def advance(self):
        """Move to the next item, wrapping to the start past the end."""
        if not self.item_ids:
            return None
        self.position += 1
        if self.position >= len(self.item_ids):
            self.position = 0
        return self.current

    def to_dict(self):
        return {'item_ids': self.item_ids, 'position': self.position}


def load_cursor(session, task_id, due_ids):
    """
    Restore the cursor stored in the Django session for a task.

    A stored cursor built from different due ids is discarded and the new one
    starts at the first item.

    Returns (cursor, reset) where reset is True when no matching cursor was stored.
    """
    due_ids = [str(item_id) for item_id in due_ids]
    stored = session.get(SESSION_KEY, {}).get(str(task_id))
    if stored and stored.get('item_ids') == due_ids:
        return SessionCursor(due_ids, stored.get('position', 0)), False
    return SessionCursor(due_ids), True


def save_cursor(session, task_id, cursor):
    cursors = session.get(SESSION_KEY, {})
    cursors[str(task_id)] = cursor.to_dict()
    session[SESSION_KEY] = cursors
