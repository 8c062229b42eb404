"""
Streamlit Frontend for Farmbook

The screens the family uses day to day: the farm task board (with
calendar, fields, work logs and reports) and the household/farm ledger
(receipt entry, transactions, annual report and tax export, assets,
inventory, accounts and the family group).

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before anything from a receipt is saved
3. Clear error messages in simple language
4. Work recorded in the field is never lost, even offline
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import streamlit as st

from farmbook.audit import create_correlation_id
from farmbook.board.reports import (
    completed_tasks_by_assignee,
    heatmap,
    total_hours,
    work_hours_by_field,
    work_log_csv,
    work_log_rows,
)
from farmbook.config import get_settings, validate_all_settings
from farmbook.ledger import (
    AlreadyMemberError,
    InvalidInviteCodeError,
    LedgerError,
    calculate_depreciation,
    depreciation_schedule,
    effective_business_ratio,
    total_wallet_balance,
)
from farmbook.models.base import local_today, utc_now
from farmbook.models.board import (
    MAX_WORK_LOG_PHOTOS,
    Profile,
    RecurrenceType,
    Task,
    TaskPriority,
    TaskStatus,
)
from farmbook.models.ledger import AccountType, WalletType
from farmbook.orchestrator import AppComponents, create_app_components
from farmbook.services.weather import is_good_farming_day, weather_info


# Page configuration
st.set_page_config(
    page_title="Farmbook",
    page_icon="🌾",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .task-card {
        padding: 10px;
        background-color: #ffffff;
        border-radius: 10px;
        border-left: 5px solid #10B981;
        margin: 6px 0;
    }
    .warning-box {
        padding: 16px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


PRIORITY_ICONS = {
    TaskPriority.LOW: "🟢",
    TaskPriority.MEDIUM: "🟡",
    TaskPriority.HIGH: "🔴",
}
RECURRENCE_LABELS = {
    RecurrenceType.NONE: "なし",
    RecurrenceType.DAILY: "毎日",
    RecurrenceType.WEEKLY: "毎週",
    RecurrenceType.MONTHLY: "毎月",
}
ACCOUNT_TYPE_LABELS = {
    AccountType.INCOME: "収入",
    AccountType.EXPENSE: "経費",
    AccountType.HOUSEHOLD: "家計",
}
WEEKDAY_HEADERS = ["日", "月", "火", "水", "木", "金", "土"]


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        components = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        components = create_app_components(use_storage=False)
    run_async(components.ledger.seed_default_accounts())
    return components


def yen(amount) -> str:
    return f"¥{Decimal(amount):,.0f}"


def current_user(app: AppComponents):
    """The profile chosen in the sidebar, or None before anyone is set up."""
    profiles = run_async(app.board.list_profiles())
    if not profiles:
        return None
    ids = [p.id for p in profiles]
    selected = st.sidebar.selectbox(
        "👤 利用者",
        options=ids,
        format_func=lambda pid: next(p.display_name for p in profiles if p.id == pid),
        key="current_user_id",
    )
    return next(p for p in profiles if p.id == selected)


def main():
    """Main application entry point."""
    app = get_components()

    st.sidebar.title("🌾 Farmbook")
    user = current_user(app)
    st.sidebar.markdown("---")

    pages = {
        "📋 ボード": render_board_page,
        "📅 カレンダー": render_calendar_page,
        "📝 作業記録": render_work_logs_page,
        "🗺️ 圃場": render_fields_page,
        "📈 作業レポート": render_work_reports_page,
        "🏠 家計簿ホーム": render_ledger_home_page,
        "➕ 入力": render_add_entry_page,
        "📒 取引一覧": render_transactions_page,
        "📊 年間レポート": render_reports_page,
        "🏦 資産": render_assets_page,
        "📦 棚卸": render_inventory_page,
        "🗂️ 勘定科目": render_accounts_page,
        "👪 家族": render_family_page,
        "⚙️ 設定": render_settings_page,
    }
    page = st.sidebar.radio("Navigate to:", list(pages), index=0)

    if not app.sync_manager.is_online:
        st.sidebar.warning(f"📴 オフライン: 未送信 {app.sync_manager.pending_count} 件")

    if user is None and page != "⚙️ 設定":
        st.info("まず「⚙️ 設定」で利用者を登録してください。")
        return
    pages[page](app, user)


# =============================================================================
# TASK BOARD
# =============================================================================

def render_weather(app: AppComponents):
    report = app.weather.fetch()
    if report is None:
        return
    now = weather_info(report.current.weather_code)
    cols = st.columns(len(report.daily) + 1)
    cols[0].metric("現在", f"{now.icon} {report.current.temperature}°C", f"風 {report.current.wind_speed}km/h")
    for col, day in zip(cols[1:], report.daily):
        info = weather_info(day.weather_code)
        good = " 👍" if is_good_farming_day(day) else ""
        col.markdown(
            f"**{day.day.strftime('%m/%d')}**{good}<br>{info.icon} {info.label}<br>"
            f"{day.temp_max}° / {day.temp_min}°",
            unsafe_allow_html=True,
        )


def task_form(app: AppComponents, key: str, task: Task = None) -> dict:
    """Inputs shared by the new task and edit task forms."""
    fields = run_async(app.board.list_fields())
    profiles = run_async(app.board.list_profiles())

    title = st.text_input("タイトル *", value=task.title if task else "", key=f"{key}_title")
    description = st.text_area("説明", value=(task.description or "") if task else "", key=f"{key}_desc")
    col1, col2, col3 = st.columns(3)
    with col1:
        priority = st.selectbox(
            "優先度",
            options=list(TaskPriority),
            index=list(TaskPriority).index(task.priority if task else TaskPriority.MEDIUM),
            format_func=lambda p: f"{PRIORITY_ICONS[p]} {p.value}",
            key=f"{key}_priority",
        )
        due_date = st.date_input("期限", value=task.due_date if task else None, key=f"{key}_due")
    with col2:
        assignee_options = [None] + [p.id for p in profiles]
        assignee_id = st.selectbox(
            "担当者",
            options=assignee_options,
            index=assignee_options.index(task.assignee_id) if task and task.assignee_id in assignee_options else 0,
            format_func=lambda pid: "未割当" if pid is None else next(p.display_name for p in profiles if p.id == pid),
            key=f"{key}_assignee",
        )
        field_options = [None] + [f.id for f in fields]
        field_id = st.selectbox(
            "圃場",
            options=field_options,
            index=field_options.index(task.field_id) if task and task.field_id in field_options else 0,
            format_func=lambda fid: "未設定" if fid is None else next(f.name for f in fields if f.id == fid),
            key=f"{key}_field",
        )
    with col3:
        recurrence_type = st.selectbox(
            "繰り返し",
            options=list(RecurrenceType),
            index=list(RecurrenceType).index(task.recurrence_type if task else RecurrenceType.NONE),
            format_func=lambda r: RECURRENCE_LABELS[r],
            key=f"{key}_recurrence",
        )
        recurrence_interval = st.number_input(
            "間隔", min_value=1, max_value=365,
            value=task.recurrence_interval if task else 1,
            key=f"{key}_interval",
        )
        recurrence_end_date = st.date_input(
            "繰り返し終了日",
            value=task.recurrence_end_date if task else None,
            key=f"{key}_end",
        )
    tags = st.text_input(
        "タグ (カンマ区切り)",
        value=", ".join(task.tags) if task else "",
        key=f"{key}_tags",
    )

    return {
        "title": title,
        "description": description or None,
        "priority": priority,
        "due_date": due_date,
        "assignee_id": assignee_id,
        "field_id": field_id,
        "recurrence_type": recurrence_type,
        "recurrence_interval": int(recurrence_interval),
        "recurrence_end_date": recurrence_end_date,
        "tags": [t for t in tags.split(",")],
    }


def render_board_page(app: AppComponents, user: Profile):
    st.title("📋 作業ボード")
    render_weather(app)

    with st.expander("➕ 新しいタスク"):
        values = task_form(app, "new_task")
        if st.button("作成", type="primary", key="create_task"):
            title = values.pop("title")
            if not title.strip():
                st.error("タイトルを入力してください")
            else:
                try:
                    run_async(app.board.create_task(title, created_by=user.id, **values))
                    st.success("タスクを作成しました")
                    st.rerun()
                except ValueError as e:
                    st.error(f"作成できませんでした: {e}")

    board = run_async(app.board.fetch_board())
    columns = st.columns(len(board.columns))
    for col, column in zip(columns, board.columns):
        with col:
            st.subheader(f"{column.title} ({len(column.tasks)})")
            for task in column.tasks:
                render_task_card(app, user, task)


def render_task_card(app: AppComponents, user: Profile, task: Task):
    due = f" 📅 {task.due_date.strftime('%m/%d')}" if task.due_date else ""
    repeat = " 🔁" if task.is_recurring else ""
    with st.expander(f"{PRIORITY_ICONS[task.priority]} {task.title}{due}{repeat}"):
        if task.description:
            st.markdown(task.description)
        if task.tags:
            st.caption(" ".join(f"#{t}" for t in task.tags))

        statuses = list(TaskStatus)
        new_status = st.selectbox(
            "移動",
            options=statuses,
            index=statuses.index(task.status),
            format_func=lambda s: s.label,
            key=f"move_{task.id}",
        )
        if new_status != task.status:
            _, spawned = run_async(app.board.move_task(task.id, new_status))
            if spawned:
                st.toast(f"次回のタスクを作成しました ({spawned.due_date})")
            st.rerun()

        tab_log, tab_comments, tab_edit, tab_history = st.tabs(["作業記録", "コメント", "編集", "履歴"])
        with tab_log:
            render_work_log_form(app, user, task)
        with tab_comments:
            for comment in run_async(app.board.list_comments(task.id)):
                st.markdown(f"💬 {comment.content}  \n<small>{comment.created_at:%Y-%m-%d %H:%M}</small>", unsafe_allow_html=True)
            content = st.text_input("コメント", key=f"comment_{task.id}")
            if st.button("送信", key=f"send_comment_{task.id}") and content.strip():
                run_async(app.board.add_comment(task.id, user.id, content))
                st.rerun()
        with tab_edit:
            values = task_form(app, f"edit_{task.id}", task)
            if st.button("保存", key=f"save_{task.id}"):
                try:
                    run_async(app.board.update_task(task.id, **values))
                    st.rerun()
                except ValueError as e:
                    st.error(f"保存できませんでした: {e}")
            if st.button("🗑️ 削除", key=f"delete_{task.id}"):
                run_async(app.board.delete_task(task.id))
                st.rerun()
        with tab_history:
            render_history(app, "task", task.id)


def render_history(app: AppComponents, entity_type: str, entity_id):
    """Audit trail of one record, when audit storage is connected."""
    if not app.audit_logger.persistent:
        st.caption("履歴はスプレッドシート接続時のみ表示されます")
        return
    events = run_async(app.audit_logger.history(entity_type, entity_id))
    if not events:
        st.caption("履歴はまだありません")
    for event in events:
        st.markdown(f"<small>{event.timestamp:%Y-%m-%d %H:%M} ・ {event.description}</small>", unsafe_allow_html=True)


def render_work_log_form(app: AppComponents, user: Profile, task: Task):
    mode = st.radio(
        "記録方法",
        ["所要時間", "写真・メモ"],
        horizontal=True,
        key=f"log_mode_{task.id}",
    )
    notes = st.text_area("メモ", key=f"log_notes_{task.id}")

    if mode == "所要時間":
        col1, col2 = st.columns(2)
        duration = col1.number_input("時間", min_value=0.0, step=0.5, key=f"log_duration_{task.id}")
        unit = col2.selectbox(
            "単位", ["minutes", "hours"],
            format_func=lambda u: "分" if u == "minutes" else "時間",
            key=f"log_unit_{task.id}",
        )
        if st.button("記録する", key=f"log_completion_{task.id}"):
            if duration <= 0:
                st.error("時間を入力してください")
                return
            run_async(app.board.log_completion(task.id, user.id, duration, unit, notes or None))
            st.success("作業を記録しました")
        return

    photos = st.file_uploader(
        f"写真 (最大{MAX_WORK_LOG_PHOTOS}枚)",
        type=get_settings().app.supported_formats_list,
        accept_multiple_files=True,
        key=f"log_photos_{task.id}",
    )
    if st.button("記録する", key=f"log_work_{task.id}"):
        images = [photo.read() for photo in (photos or [])][:MAX_WORK_LOG_PHOTOS]
        try:
            now = utc_now()
            result = run_async(app.work_log_flow.submit(
                task.id, user.id, notes or None, images, started_at=now, ended_at=now,
            ))
        except Exception as e:
            st.error(f"記録できませんでした: {e}")
            return
        if app.sync_manager.is_online:
            st.success("作業を記録しました")
        else:
            st.info(f"オフラインのため端末に保存しました (#{result.local_id})")


def render_calendar_page(app: AppComponents, user: Profile):
    st.title("📅 カレンダー")
    today = local_today()
    col1, col2 = st.columns(2)
    year = col1.number_input("年", min_value=2000, max_value=2100, value=today.year)
    month = col2.number_input("月", min_value=1, max_value=12, value=today.month)

    grid = run_async(app.board.calendar_month(int(year), int(month)))
    header = st.columns(7)
    for col, label in zip(header, WEEKDAY_HEADERS):
        col.markdown(f"**{label}**")
    for week in grid.weeks():
        cols = st.columns(7)
        for col, cell in zip(cols, week):
            if cell is None:
                col.markdown("&nbsp;", unsafe_allow_html=True)
                continue
            mark = "🟩 " if cell.day == today else ""
            lines = [f"**{mark}{cell.day.day}**"]
            lines.extend(f"• {t.title}" for t in cell.tasks)
            col.markdown("<br>".join(lines), unsafe_allow_html=True)


def render_work_logs_page(app: AppComponents, user: Profile):
    st.title("📝 作業記録")
    logs = run_async(app.board.list_work_logs())
    tasks = run_async(app.board.list_tasks())
    fields = run_async(app.board.list_fields())

    if not logs:
        st.info("まだ作業記録がありません。")
        return

    st.download_button(
        "⬇️ CSVで書き出す",
        data=work_log_csv(logs, tasks, fields).encode("utf-8-sig"),
        file_name=f"work-report-{local_today().isoformat()}.csv",
        mime="text/csv",
    )
    tasks_by_id = {t.id: t for t in tasks}
    for log in logs:
        task = tasks_by_id.get(log.task_id)
        with st.container(border=True):
            st.markdown(f"**{task.title if task else '不明なタスク'}** ・ {log.created_at:%Y-%m-%d %H:%M}")
            if log.duration_hours:
                st.caption(f"⏱️ {log.duration_hours:.1f} 時間")
            if log.notes:
                st.write(log.notes)
            if log.photo_urls:
                st.image(log.photo_urls, width=160)


def render_fields_page(app: AppComponents, user: Profile):
    st.title("🗺️ 圃場")
    with st.form("new_field", clear_on_submit=True):
        name = st.text_input("名前 *")
        location = st.text_input("場所")
        color = st.color_picker("色", value="#10B981")
        description = st.text_area("説明")
        if st.form_submit_button("追加") and name.strip():
            run_async(app.board.create_field(
                name, location=location or None, color=color.upper(), description=description or None,
            ))
            st.rerun()

    for field in run_async(app.board.list_fields()):
        col1, col2 = st.columns([5, 1])
        col1.markdown(
            f"<span style='color:{field.color}'>●</span> **{field.name}** {field.location or ''}",
            unsafe_allow_html=True,
        )
        if col2.button("削除", key=f"delete_field_{field.id}"):
            run_async(app.board.delete_field(field.id))
            st.rerun()


def render_work_reports_page(app: AppComponents, user: Profile):
    st.title("📈 作業レポート")
    logs = run_async(app.board.list_work_logs())
    tasks = run_async(app.board.list_tasks())
    fields = run_async(app.board.list_fields())
    profiles = run_async(app.board.list_profiles())

    col1, col2 = st.columns(2)
    col1.metric("総作業時間", f"{total_hours(logs)} 時間")
    col2.metric("完了タスク", f"{sum(1 for t in tasks if t.is_done)} 件")

    st.subheader("圃場別 作業時間")
    by_field = work_hours_by_field(logs, tasks, fields)
    if by_field:
        st.bar_chart([{"圃場": f.name, "時間": f.hours} for f in by_field], x="圃場", y="時間")

    st.subheader("担当者別 完了タスク")
    by_person = completed_tasks_by_assignee(tasks, profiles)
    if by_person:
        st.bar_chart([{"担当者": p.name, "件数": p.count} for p in by_person], x="担当者", y="件数")

    st.subheader("作業の記録 (過去4ヶ月)")
    cells = heatmap(logs, local_today(), get_settings().app.heatmap_days)
    st.bar_chart([{"日付": c.day.isoformat(), "時間": c.hours} for c in cells], x="日付", y="時間")

    st.download_button(
        "⬇️ 作業記録をCSVで書き出す",
        data=work_log_csv(logs, tasks, fields).encode("utf-8-sig"),
        file_name=f"work-report-{local_today().isoformat()}.csv",
        mime="text/csv",
    )
    with st.expander("作業記録一覧"):
        st.dataframe(work_log_rows(logs, tasks, fields), use_container_width=True)


# =============================================================================
# LEDGER
# =============================================================================

def account_picker(app: AppComponents, label: str, key: str, types=None, default=None):
    accounts = run_async(app.ledger.list_accounts())
    if types:
        accounts = [a for a in accounts if a.account_type_id in types]
    ids = [a.id for a in accounts]
    if not ids:
        st.warning("勘定科目がありません")
        return None
    return st.selectbox(
        label,
        options=ids,
        index=ids.index(default) if default in ids else 0,
        format_func=lambda aid: next(
            f"{a.display_name} ({a.name})" for a in accounts if a.id == aid
        ),
        key=key,
    )


def render_ledger_home_page(app: AppComponents, user: Profile):
    st.title("🏠 家計簿")
    summary = run_async(app.ledger.month_summary(user.id))
    st.caption(f"{summary.month_start:%Y年%m月}")
    col1, col2, col3 = st.columns(3)
    col1.metric("収入", yen(summary.income))
    col2.metric("支出", yen(summary.expense))
    col3.metric("収支", yen(summary.balance))
    col4, col5 = st.columns(2)
    col4.metric("事業経費", yen(summary.business_expense))
    col5.metric("家計支出", yen(summary.household_expense))

    st.subheader("最近の記録")
    for row in run_async(app.ledger.recent_transactions(user.id)):
        st.markdown(f"{row['date']:%m/%d} ・ {row['category']} ・ **{yen(row['amount'])}**")


def render_add_entry_page(app: AppComponents, user: Profile):
    st.title("➕ 入力")
    tab_receipt, tab_manual, tab_self = st.tabs(["📷 レシート", "✏️ 手入力", "🥬 自家消費"])
    with tab_receipt:
        render_receipt_entry(app, user)
    with tab_manual:
        render_manual_entry(app, user)
    with tab_self:
        render_self_consumption_entry(app, user)


def render_receipt_entry(app: AppComponents, user: Profile):
    flow = app.receipt_flow
    if flow is None:
        st.warning("レシート読み取りが設定されていません (GEMINI_API_KEY)")
        return

    if "receipt_state" not in st.session_state:
        st.session_state.receipt_state = "idle"  # idle, reviewing, saved

    uploaded = st.file_uploader(
        "レシートの写真",
        type=get_settings().app.supported_formats_list,
        key="receipt_upload",
    )
    if uploaded and st.session_state.receipt_state == "idle":
        if st.button("🔍 読み取る", type="primary"):
            st.session_state.correlation_id = create_correlation_id()
            with st.spinner("読み取り中..."):
                try:
                    receipt, validation, image_url, message = run_async(flow.analyze_receipt(
                        uploaded.read(),
                        uploaded.type or "image/jpeg",
                        correlation_id=st.session_state.correlation_id,
                    ))
                except Exception as e:
                    st.error(f"解析に失敗しました: {e}")
                    return
            st.session_state.receipt = receipt
            st.session_state.receipt_validation = validation
            st.session_state.receipt_image_url = image_url
            st.session_state.receipt_message = message
            st.session_state.receipt_state = "reviewing"
            st.rerun()

    if st.session_state.receipt_state == "reviewing":
        receipt = st.session_state.receipt
        validation = st.session_state.receipt_validation
        if not validation.is_valid or validation.warnings:
            st.markdown(
                f"<div class='warning-box'>{st.session_state.receipt_message}</div>",
                unsafe_allow_html=True,
            )
        if st.session_state.receipt_image_url:
            st.image(st.session_state.receipt_image_url, width=300)

        st.markdown("*保存する前に内容を確認・修正してください*")
        amount = st.number_input("金額 *", min_value=0.0, value=float(receipt.amount or 0), step=1.0)
        entry_date = st.date_input("日付 *", value=receipt.receipt_date or local_today())
        account_id = account_picker(app, "勘定科目 *", "receipt_account")
        description = st.text_input("内容", value=receipt.description or "")
        st.caption(f"分類の提案: {receipt.category.value}")

        col1, col2 = st.columns(2)
        if col1.button("✅ 確認して保存", type="primary"):
            try:
                run_async(flow.confirm_and_save(
                    user.id,
                    receipt,
                    Decimal(str(amount)),
                    entry_date,
                    account_id,
                    description=description,
                    image_url=st.session_state.receipt_image_url,
                    correlation_id=st.session_state.correlation_id,
                ))
                st.session_state.receipt_state = "saved"
                st.rerun()
            except LedgerError as e:
                st.error(f"保存できませんでした: {e}")
        if col2.button("❌ やり直す"):
            st.session_state.receipt_state = "idle"
            st.rerun()

    if st.session_state.receipt_state == "saved":
        st.success("✅ 保存しました")
        if st.button("📷 次のレシート"):
            st.session_state.receipt_state = "idle"
            st.rerun()


def render_manual_entry(app: AppComponents, user: Profile):
    with st.form("manual_entry", clear_on_submit=True):
        amount = st.number_input("金額 *", min_value=0.0, step=1.0)
        entry_date = st.date_input("日付 *", value=local_today())
        account_id = account_picker(app, "勘定科目 *", "manual_account")
        description = st.text_input("内容")
        if st.form_submit_button("保存", type="primary"):
            try:
                run_async(app.ledger.save_transaction(
                    user.id, Decimal(str(amount)), entry_date, account_id, description=description,
                ))
                st.success("保存しました")
            except LedgerError as e:
                st.error(f"保存できませんでした: {e}")


def render_self_consumption_entry(app: AppComponents, user: Profile):
    st.caption("作った作物を家で食べた場合など")
    with st.form("self_consumption", clear_on_submit=True):
        amount = st.number_input("金額 (時価) *", min_value=0.0, step=1.0)
        entry_date = st.date_input("日付 *", value=local_today())
        description = st.text_input("品目")
        if st.form_submit_button("記録", type="primary"):
            try:
                run_async(app.ledger.record_self_consumption(
                    user.id, Decimal(str(amount)), entry_date, description=description or None,
                ))
                st.success("記録しました")
            except LedgerError as e:
                st.error(f"記録できませんでした: {e}")


def render_transactions_page(app: AppComponents, user: Profile):
    st.title("📒 取引一覧")
    col1, col2 = st.columns(2)
    date_from = col1.date_input("開始日", value=local_today() - timedelta(days=90))
    date_to = col2.date_input("終了日", value=local_today())

    accounts = {a.id: a for a in run_async(app.ledger.list_accounts())}
    transactions = run_async(app.ledger.list_transactions(user.id, date_from=date_from, date_to=date_to))
    if not transactions:
        st.info("この期間の記録はありません。")
        return

    for tx in transactions:
        account = accounts.get(tx.account_id)
        label = account.display_name if account else "不明"
        with st.expander(f"{tx.date:%Y-%m-%d} ・ {label} ・ {yen(tx.amount)}"):
            if tx.image_url:
                st.image(tx.image_url, width=240)
            amount = st.number_input("金額", min_value=0.0, value=float(tx.amount), key=f"amt_{tx.id}")
            entry_date = st.date_input("日付", value=tx.date, key=f"date_{tx.id}")
            account_id = account_picker(app, "勘定科目", f"acct_{tx.id}", default=tx.account_id)
            description = st.text_input("内容", value=tx.description or "", key=f"desc_{tx.id}")
            col1, col2 = st.columns(2)
            if col1.button("保存", key=f"save_tx_{tx.id}"):
                try:
                    run_async(app.ledger.update_transaction(
                        tx.id,
                        amount=Decimal(str(amount)),
                        date=entry_date,
                        account_id=account_id,
                        description=description or None,
                    ))
                    st.rerun()
                except (LedgerError, ValueError) as e:
                    st.error(f"保存できませんでした: {e}")
            if col2.button("🗑️ 削除", key=f"del_tx_{tx.id}"):
                run_async(app.ledger.delete_transaction(tx.id))
                st.rerun()

            for comment in run_async(app.ledger.list_transaction_comments(tx.id)):
                st.markdown(f"💬 {comment.content}")
            content = st.text_input("コメント", key=f"tx_comment_{tx.id}")
            if st.button("送信", key=f"tx_send_{tx.id}") and content.strip():
                run_async(app.ledger.add_transaction_comment(tx.id, user.id, content))
                st.rerun()
            render_history(app, "transaction", tx.id)


def render_reports_page(app: AppComponents, user: Profile):
    year = int(st.number_input("年度", min_value=2000, max_value=2100, value=local_today().year))
    st.title(f"📊 {year}年の分析")
    report = run_async(app.ledger.annual_report(year, user.id))

    col1, col2, col3 = st.columns(3)
    col1.metric("収入", yen(report.total_income))
    col2.metric("事業経費", yen(report.total_business_expense))
    col3.metric("家計支出", yen(report.total_household_expense))

    st.subheader("月別推移")
    st.bar_chart(
        [
            {
                "月": m.label,
                "収入": float(m.income),
                "事業経費": float(m.business_expense),
                "家計支出": float(m.household_expense),
            }
            for m in report.months
        ],
        x="月",
        y=["収入", "事業経費", "家計支出"],
    )

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("事業経費の内訳")
        for c in report.business_categories:
            st.markdown(f"{c.name}: **{yen(c.amount)}**")
    with col2:
        st.subheader("家計支出の内訳")
        for c in report.household_categories:
            st.markdown(f"{c.name}: **{yen(c.amount)}**")

    st.download_button(
        "⬇️ 青色申告決算書 CSV",
        data=run_async(app.ledger.income_statement_csv(year, user.id)).encode("utf-8"),
        file_name=f"income-statement-{year}.csv",
        mime="text/csv",
    )

    st.subheader("📝 月のメモ")
    month = st.text_input("月 (YYYY-MM)", value=local_today().strftime("%Y-%m"))
    try:
        existing = run_async(app.ledger.get_monthly_note(user.id, month))
    except LedgerError as e:
        st.error(str(e))
        return
    note = st.text_area("メモ", value=existing.note if existing else "", key=f"note_{month}")
    budget = st.number_input(
        "予算", min_value=0.0, step=1000.0,
        value=float(existing.budget) if existing and existing.budget is not None else 0.0,
        key=f"budget_{month}",
    )
    if st.button("メモを保存"):
        run_async(app.ledger.save_monthly_note(
            user.id, month, note, Decimal(str(budget)) if budget else None,
        ))
        st.success("保存しました")


def render_assets_page(app: AppComponents, user: Profile):
    st.title("🏦 資産")
    tab_wallets, tab_fixed = st.tabs(["👛 財布・口座", "🚜 固定資産"])

    with tab_wallets:
        members = run_async(app.ledger.list_family_members(user.id))
        wallets = [w for m in members for w in run_async(app.ledger.list_wallets(m.id))]
        st.metric("合計残高", yen(total_wallet_balance(wallets)))

        with st.form("new_member", clear_on_submit=True):
            name = st.text_input("家族の名前")
            if st.form_submit_button("家族を追加") and name.strip():
                run_async(app.ledger.add_family_member(user.id, name))
                st.rerun()

        for member in members:
            st.markdown(f"### {member.name}")
            for wallet in run_async(app.ledger.list_wallets(member.id)):
                icon = "💴" if wallet.wallet_type == WalletType.CASH else "🏦"
                col1, col2, col3 = st.columns([3, 2, 1])
                col1.markdown(f"{icon} {wallet.name}")
                balance = col2.number_input(
                    "残高", value=float(wallet.balance), step=1000.0,
                    key=f"bal_{wallet.id}", label_visibility="collapsed",
                )
                if balance != float(wallet.balance):
                    run_async(app.ledger.update_wallet_balance(wallet.id, Decimal(str(balance))))
                if col3.button("削除", key=f"del_wallet_{wallet.id}"):
                    run_async(app.ledger.delete_wallet(wallet.id))
                    st.rerun()
            with st.form(f"wallet_{member.id}", clear_on_submit=True):
                wallet_name = st.text_input("財布・口座名")
                wallet_type = st.selectbox(
                    "種類", list(WalletType),
                    format_func=lambda t: "現金" if t == WalletType.CASH else "銀行",
                )
                balance = st.number_input("残高", value=0.0, step=1000.0)
                if st.form_submit_button("追加") and wallet_name.strip():
                    run_async(app.ledger.add_wallet(
                        member.id, wallet_name, wallet_type, Decimal(str(balance)),
                    ))
                    st.rerun()
            if st.button(f"{member.name} を削除", key=f"del_member_{member.id}"):
                run_async(app.ledger.delete_family_member(member.id))
                st.rerun()

    with tab_fixed:
        with st.form("new_asset", clear_on_submit=True):
            name = st.text_input("資産名 *")
            purchase_date = st.date_input("取得日", value=local_today())
            price = st.number_input("取得価額", min_value=0.0, step=10000.0)
            life = st.number_input("耐用年数", min_value=1, max_value=100, value=7)
            residual = st.number_input("残存価額", min_value=0.0, step=1.0)
            memo = st.text_input("メモ")
            if st.form_submit_button("追加") and name.strip():
                try:
                    run_async(app.ledger.add_fixed_asset(
                        user.id,
                        name=name,
                        purchase_date=purchase_date,
                        purchase_price=Decimal(str(price)),
                        useful_life_years=int(life),
                        residual_value=Decimal(str(residual)),
                        memo=memo or None,
                    ))
                    st.rerun()
                except ValueError as e:
                    st.error(f"追加できませんでした: {e}")

        for asset in run_async(app.ledger.list_fixed_assets(user.id)):
            result = calculate_depreciation(asset)
            with st.expander(f"{asset.name} ・ 帳簿価額 {yen(result.book_value)}"):
                col1, col2, col3 = st.columns(3)
                col1.metric("年間償却額", yen(result.annual_depreciation))
                col2.metric("償却累計額", yen(result.accumulated_depreciation))
                col3.metric("残り年数", "償却済" if result.is_complete else f"{result.years_remaining} 年")
                st.dataframe(
                    [row.model_dump() for row in depreciation_schedule(asset)],
                    use_container_width=True,
                )
                if st.button("削除", key=f"del_asset_{asset.id}"):
                    run_async(app.ledger.delete_fixed_asset(asset.id))
                    st.rerun()


def render_inventory_page(app: AppComponents, user: Profile):
    st.title("📦 棚卸")
    year = int(st.number_input("年度", min_value=2000, max_value=2100, value=local_today().year))
    summary = run_async(app.ledger.inventory_summary(year, user.id))
    col1, col2 = st.columns(2)
    col1.metric("品目数", summary.item_count)
    col2.metric("期末棚卸高", yen(summary.total_value))

    with st.form("new_item", clear_on_submit=True):
        item_name = st.text_input("品目 *")
        col1, col2, col3 = st.columns(3)
        quantity = col1.number_input("数量", min_value=0.0, step=1.0)
        unit = col2.text_input("単位", value="kg")
        unit_price = col3.number_input("単価", min_value=0.0, step=1.0)
        category = st.text_input("分類")
        if st.form_submit_button("追加") and item_name.strip():
            run_async(app.ledger.add_inventory_item(
                user.id,
                fiscal_year=year,
                item_name=item_name,
                quantity=Decimal(str(quantity)),
                unit=unit,
                unit_price=Decimal(str(unit_price)),
                category=category or None,
            ))
            st.rerun()

    for item in run_async(app.ledger.list_inventory_items(year, user.id)):
        col1, col2 = st.columns([5, 1])
        col1.markdown(f"{item.item_name} ・ {item.quantity}{item.unit} × {yen(item.unit_price)} = **{yen(item.total_value)}**")
        if col2.button("削除", key=f"del_item_{item.id}"):
            run_async(app.ledger.delete_inventory_item(item.id))
            st.rerun()


def render_accounts_page(app: AppComponents, user: Profile):
    st.title("🗂️ 勘定科目")
    st.caption("経費のうち事業に使った割合 (家事按分) を設定します。")
    for account in run_async(app.ledger.list_accounts()):
        col1, col2 = st.columns([2, 3])
        col1.markdown(f"**{account.display_name}** ({ACCOUNT_TYPE_LABELS.get(account.account_type_id, '-')})")
        if account.account_type_id == AccountType.INCOME:
            continue
        current = effective_business_ratio(account)
        ratio = col2.slider("事業割合 %", 0, 100, current, key=f"ratio_{account.id}")
        if ratio != current:
            run_async(app.ledger.set_business_ratio(account.id, ratio))


def render_family_page(app: AppComponents, user: Profile):
    st.title("👪 家族グループ")
    group = run_async(app.ledger.current_group(user.id))
    if group is not None:
        st.markdown(f"### {group.name}")
        st.markdown(f"招待コード: `{group.invite_code}`")
        profiles = {p.id: p for p in run_async(app.board.list_profiles())}
        for member in run_async(app.ledger.group_members(group.id)):
            profile = profiles.get(member.user_id)
            name = profile.display_name if profile else str(member.user_id)
            st.markdown(f"- {name} ({member.role.value})")
        return

    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("グループ名")
        if st.button("グループを作成") and name.strip():
            run_async(app.ledger.create_family_group(user.id, name))
            st.rerun()
    with col2:
        code = st.text_input("招待コード")
        if st.button("参加する") and code.strip():
            try:
                run_async(app.ledger.join_family_group(user.id, code))
                st.rerun()
            except (InvalidInviteCodeError, AlreadyMemberError) as e:
                st.error(str(e))


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(app: AppComponents, user):
    st.title("⚙️ 設定")

    st.markdown("### 利用者")
    with st.form("new_profile", clear_on_submit=True):
        display_name = st.text_input("表示名")
        email = st.text_input("メール")
        if st.form_submit_button("利用者を追加") and display_name.strip():
            run_async(app.board.save_profile(Profile(display_name=display_name, email=email or None)))
            st.rerun()

    st.markdown("### オフライン")
    online = st.toggle("オンライン", value=app.sync_manager.is_online)
    if online != app.sync_manager.is_online:
        report = run_async(app.sync_manager.set_online(online))
        if report is not None:
            st.success(f"同期: {report.synced} 件送信, {report.failed} 件失敗, 残り {report.remaining} 件")
    st.markdown(f"未送信の作業記録: **{app.sync_manager.pending_count}** 件")
    if st.button("今すぐ同期"):
        report = run_async(app.sync_manager.sync())
        st.info(f"{report.synced} 件送信, {report.failed} 件失敗, 残り {report.remaining} 件")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Cloudinary (Photos)", "cloudinary"),
        ("Gemini (Receipts)", "gemini"),
        ("Web Push (Notifications)", "web_push"),
        ("Open-Meteo (Weather)", "weather"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Connected")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if app.sheets_client is None:
        st.warning("Google Sheets が未設定のため、データはこの実行中のみ保持されます。")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
