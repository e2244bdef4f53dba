from __future__ import annotations

import unittest

from supply_desk.services.notification_service import NotificationLevel, Notifier


class NotifierTests(unittest.TestCase):
    def test_recent_returns_newest_first(self) -> None:
        notifier = Notifier()
        notifier.info('one')
        notifier.success('two')
        notifier.error('three')
        self.assertEqual([note.message for note in notifier.recent(limit=2)], ['three', 'two'])
        self.assertEqual(notifier.recent(limit=1)[0].level, NotificationLevel.ERROR)

    def test_non_positive_limit_returns_nothing(self) -> None:
        notifier = Notifier()
        notifier.info('one')
        notifier.info('two')
        self.assertEqual(notifier.recent(limit=0), [])
        self.assertEqual(notifier.recent(limit=-1), [])

    def test_history_is_bounded(self) -> None:
        notifier = Notifier(max_messages=3)
        for index in range(5):
            notifier.info(f'message {index}')
        self.assertEqual([note.message for note in notifier.recent()], ['message 4', 'message 3', 'message 2'])


if __name__ == '__main__':
    unittest.main()
