import asyncio
import unittest
from datetime import timedelta

from fakes import FakeBackend, offline

from blog_dm.client.api_client import LocalFile
from blog_dm.client.composer import ClipboardItem
from blog_dm.client.errors import ApiError
from blog_dm.client.thread_view import ThreadView
from blog_dm.client.unread import UnreadCounter


class ThreadViewTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.backend = FakeBackend()
        self.backend.seed(2, 1, "hello alice", count=25)
        self.api = self.backend.as_user(1)
        self.unread = UnreadCounter(self.api)
        self.popups = []
        self.view = ThreadView(
            self.api, 1, 2,
            unread=self.unread,
            notify=self.popups.append,
            clock=self.backend.clock,
        )

    async def test_open_loads_then_marks_read(self):
        await self.unread.refresh()
        self.assertEqual(self.unread.count, 25)

        self.assertTrue(await self.view.open())

        self.assertEqual(self.view.thread_id, "1-2")
        self.assertEqual(len(self.view.messages), 20)
        self.assertTrue(self.view.has_more)
        self.assertEqual(self.view.other.display_name, "Bob")
        calls = self.api.calls
        self.assertLess(calls.index("get_thread_messages"), calls.index("mark_thread_read"))
        # 整个会话都标记已读，角标随之刷新
        self.assertEqual(self.unread.count, 0)
        self.assertTrue(all(m.is_read for m in self.view.messages))
        self.assertFalse(self.view.loading)

    async def test_load_more_until_exhausted(self):
        await self.view.open()

        self.assertTrue(await self.view.load_more())
        self.assertEqual(len(self.view.messages), 25)
        self.assertEqual(self.view.messages[0].content, "hello alice 1")
        self.assertFalse(self.view.has_more)
        self.assertFalse(await self.view.load_more())

    async def test_open_failure_is_reported(self):
        self.api.failures["get_thread_messages"] = ApiError(403, "无权查看该会话")

        self.assertFalse(await self.view.open())

        self.assertEqual(self.popups, ["无权查看该会话"])
        self.assertNotIn("mark_thread_read", self.api.calls)
        self.assertFalse(self.view.loading)

    async def test_other_falls_back_before_load(self):
        view = ThreadView(self.backend.as_user(1), 1, 3)
        self.assertEqual(view.other.user_id, 3)
        self.assertEqual(view.thread_id, "1-3")

    async def test_submit_appends_message(self):
        await self.view.open()
        self.view.composer.set_draft("hi bob")

        message = await self.view.submit()

        self.assertEqual(message.recipient_id, 2)
        self.assertEqual(self.view.messages[-1].id, message.id)
        self.assertEqual(self.view.composer.draft, "")
        self.assertFalse(self.view.sending)

    async def test_submit_failure_shows_generic_notice(self):
        await self.view.open()
        self.view.composer.set_draft("hi bob")
        before = len(self.view.messages)
        self.api.failures["send_message"] = offline()

        self.assertIsNone(await self.view.submit())

        self.assertEqual(self.popups, ["send failed"])
        self.assertEqual(len(self.view.messages), before)
        self.assertEqual(self.view.composer.draft, "hi bob")

    async def test_recall_and_edit_flow(self):
        await self.view.open()
        self.view.composer.set_draft("wrong")
        sent = await self.view.submit()
        self.assertTrue(self.view.can_recall(sent))

        recalled = await self.view.recall(sent.id)
        self.assertEqual(self.view.render_text(recalled), "[message recalled]")

        self.assertTrue(self.view.begin_edit(sent.id))
        self.assertEqual(self.view.composer.draft, "wrong")
        self.view.composer.set_draft("right")
        resent = await self.view.submit()

        self.assertEqual(resent.id, sent.id)
        self.assertEqual(self.view.messages[-1].content, "right")
        self.assertEqual(self.view.render_text(resent), "right")

    async def test_recall_after_window_shows_server_reason(self):
        await self.view.open()
        self.view.composer.set_draft("old news")
        sent = await self.view.submit()
        self.backend.advance(seconds=181)
        self.assertFalse(self.view.can_recall(sent))

        self.assertIsNone(await self.view.recall(sent.id))

        self.assertEqual(self.popups, ["recall window expired"])
        self.assertFalse(self.view.store.get(sent.id).is_recalled)

    async def test_begin_edit_rejects_active_message(self):
        await self.view.open()
        incoming = self.view.messages[0]
        self.assertFalse(self.view.begin_edit(incoming.id))
        self.assertFalse(self.view.begin_edit(999))

    async def test_attachment_errors_are_reported(self):
        huge = LocalFile(filename="big.zip", mime_type="application/zip", data=b"\0" * (10 * 1024 * 1024 + 1))
        self.assertIsNone(await self.view.pick_file(huge))
        self.assertEqual(len(self.popups), 1)
        self.assertNotIn("upload_file", self.api.calls)

        attachment = await self.view.paste([ClipboardItem(mime_type="image/png", data=b"png")])
        self.assertEqual(self.view.composer.attachment, attachment)

    def _hold(self, name: str) -> asyncio.Event:
        """让 api 的某个方法停在半路，直到返回的 Event 被 set"""
        gate = asyncio.Event()
        original = getattr(self.api, name)

        async def held(*args, **kwargs):
            await gate.wait()
            return await original(*args, **kwargs)

        setattr(self.api, name, held)
        return gate

    async def test_closed_view_ignores_actions(self):
        self.view.close()

        self.assertFalse(await self.view.open())
        self.assertIsNone(await self.view.submit())
        self.assertIsNone(await self.view.mark_read(1))
        self.assertEqual(self.api.calls, [])

    async def test_close_while_requests_in_flight(self):
        await self.view.open()
        self.view.composer.set_draft("late reply")
        sent = await self.view.submit()
        before = [m.id for m in self.view.messages]

        send_gate = self._hold("send_message")
        upload_gate = self._hold("upload_file")
        page_gate = self._hold("get_thread_messages")
        recall_gate = self._hold("recall_message")
        self.api.failures["recall_message"] = offline("timeout")

        self.view.composer.set_draft("never shown")
        pending = [
            asyncio.create_task(self.view.submit()),
            asyncio.create_task(self.view.pick_file(
                LocalFile(filename="a.pdf", mime_type="application/pdf", data=b"%PDF")
            )),
            asyncio.create_task(self.view.load_more()),
            asyncio.create_task(self.view.recall(sent.id)),
        ]
        await asyncio.sleep(0)
        self.view.close()
        for gate in (send_gate, upload_gate, page_gate, recall_gate):
            gate.set()
        submitted, attachment, loaded, recalled = await asyncio.gather(*pending)

        self.assertIsNone(submitted)
        self.assertIsNone(attachment)
        self.assertFalse(loaded)
        self.assertIsNone(recalled)
        # 请求确实发出去了，只是结果没有写回界面
        self.assertEqual(len(self.backend.messages), 27)
        self.assertEqual([m.id for m in self.view.messages], before)
        self.assertIsNone(self.view.composer.attachment)
        self.assertEqual(self.popups, [])
        self.assertEqual(self.view.notices, [])

    async def test_mark_single_message_read(self):
        await self.view.store.load_page(self.view.thread_id, 1, 20)
        await self.unread.refresh()
        newest = self.view.messages[-1]
        self.assertFalse(newest.is_read)

        updated = await self.view.mark_read(newest.id)

        self.assertTrue(updated.is_read)
        self.assertTrue(self.view.store.get(newest.id).is_read)
        self.assertFalse(self.view.messages[0].is_read)
        self.assertEqual(self.unread.count, 24)

    async def test_mark_read_failure_is_reported(self):
        await self.view.store.load_page(self.view.thread_id, 1, 20)
        self.api.failures["mark_message_read"] = offline("timeout")
        first = self.view.messages[0]

        self.assertIsNone(await self.view.mark_read(first.id))
        self.assertEqual(self.popups, ["timeout"])
        self.assertFalse(self.view.store.get(first.id).is_read)

    async def test_mark_read_failure_still_opens(self):
        self.api.failures["mark_thread_read"] = offline("timeout")

        self.assertTrue(await self.view.open())
        self.assertEqual(len(self.view.messages), 20)
        self.assertEqual(self.popups, ["timeout"])

    async def test_recall_boundary_uses_clock(self):
        await self.view.open()
        self.view.composer.set_draft("edge")
        sent = await self.view.submit()

        self.backend.advance(seconds=180)
        self.assertTrue(self.view.can_recall(sent))
        self.backend.now += timedelta(milliseconds=1)
        self.assertFalse(self.view.can_recall(sent))
