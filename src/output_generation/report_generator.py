"""
Report Generator Module
Creates dashboard statistics and run logs from invoice and vendor snapshots.
"""

import pandas as pd
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from pathlib import Path

logger = logging.getLogger(__name__)

# Invoices still moving through extraction and validation
PENDING_STATUSES = ('PENDING', 'EXTRACTING', 'EXTRACTED', 'VALIDATING')
RECONCILED_STATUSES = ('VALIDATED', 'APPROVED', 'PAID')


def _invoice_frame(invoices: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(invoices)
    for col, default in (('status', None), ('total_amount', 0.0), ('invoice_date', None), ('vendor_id', None)):
        if col not in df.columns:
            df[col] = default
    df['total_amount'] = pd.to_numeric(df['total_amount'], errors='coerce').fillna(0.0)
    dates = pd.to_datetime(df['invoice_date'], errors='coerce', utc=True)
    df['month'] = dates.dt.strftime('%Y-%m')
    df['reconciled'] = df['status'].isin(RECONCILED_STATUSES)
    return df


def _success_rate(df: pd.DataFrame) -> float:
    if df.empty:
        return 0.0
    return round(float(df['reconciled'].mean()) * 100, 1)


class ReportGenerator:
    """Generates summary statistics and reports."""

    def __init__(self, logs_dir: str = "logs"):
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def dashboard_statistics(self, invoices: List[Dict[str, Any]],
                             vendors: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Headline numbers for the dashboard.

        Args:
            invoices: Invoice records
            vendors: Vendor records

        Returns:
            Dict with vendor and invoice counts, amounts, success rate (percent)
            and a per-month trend in ascending month order
        """
        active_vendors = sum(1 for v in vendors if v.get('status') == 'ACTIVE')

        if not invoices:
            return {
                'active_vendors': active_vendors,
                'total_invoices': 0,
                'total_invoice_amount': 0.0,
                'total_reconciled_amount': 0.0,
                'pending_invoices': 0,
                'disputed_invoices': 0,
                'status_breakdown': {},
                'success_rate': 0.0,
                'monthly_trend': []
            }

        df = _invoice_frame(invoices)

        trend = []
        dated = df.dropna(subset=['month'])
        if not dated.empty:
            grouped = dated.groupby('month').agg(
                invoices=('status', 'size'),
                amount=('total_amount', 'sum'),
                reconciled=('reconciled', 'sum')
            ).sort_index()
            for month, row in grouped.iterrows():
                trend.append({
                    'month': month,
                    'invoices': int(row['invoices']),
                    'amount': round(float(row['amount']), 2),
                    'reconciled': int(row['reconciled'])
                })

        stats = {
            'active_vendors': active_vendors,
            'total_invoices': len(df),
            'total_invoice_amount': round(float(df['total_amount'].sum()), 2),
            'total_reconciled_amount': round(float(df.loc[df['reconciled'], 'total_amount'].sum()), 2),
            'pending_invoices': int(df['status'].isin(PENDING_STATUSES).sum()),
            'disputed_invoices': int((df['status'] == 'DISPUTED').sum()),
            'status_breakdown': {str(k): int(v) for k, v in df['status'].value_counts().items()},
            'success_rate': _success_rate(df),
            'monthly_trend': trend
        }

        logger.info(f"Dashboard statistics computed over {stats['total_invoices']} invoices")
        return stats

    def vendor_statistics(self, vendor_id: str, invoices: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Statistics for one vendor's invoices. Invoices of other vendors are ignored."""
        own = [inv for inv in invoices if inv.get('vendor_id') == vendor_id]
        if not own:
            return {
                'vendor_id': vendor_id,
                'total_invoices': 0,
                'total_amount': 0.0,
                'reconciled_amount': 0.0,
                'pending_amount': 0.0,
                'success_rate': 0.0,
                'last_invoice_date': None,
                'monthly_invoices': []
            }

        df = _invoice_frame(own)
        dated = df.dropna(subset=['month'])
        monthly = []
        if not dated.empty:
            grouped = dated.groupby('month').agg(count=('status', 'size'), amount=('total_amount', 'sum'))
            for month, row in grouped.sort_index(ascending=False).iterrows():
                monthly.append({'month': month, 'count': int(row['count']), 'amount': round(float(row['amount']), 2)})

        last_date: Optional[str] = None
        if df['invoice_date'].notna().any():
            last_date = str(max(d for d in df['invoice_date'] if isinstance(d, str)))

        return {
            'vendor_id': vendor_id,
            'total_invoices': len(df),
            'total_amount': round(float(df['total_amount'].sum()), 2),
            'reconciled_amount': round(float(df.loc[df['reconciled'], 'total_amount'].sum()), 2),
            'pending_amount': round(float(df.loc[df['status'].isin(PENDING_STATUSES), 'total_amount'].sum()), 2),
            'success_rate': _success_rate(df),
            'last_invoice_date': last_date,
            'monthly_invoices': monthly
        }

    def write_json_log(self, summary: Dict, output_files: Optional[Dict[str, str]] = None,
                       name: str = "sync_run") -> str:
        """Write structured JSON log."""

        log_data = {
            'sync_run': summary,
            'output_files': output_files or {}
        }

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = self.logs_dir / f"{name}_{timestamp}.json"

        try:
            with open(log_path, 'w') as f:
                json.dump(log_data, f, indent=2, default=str)

            logger.info(f"JSON log written to {log_path}")
            return str(log_path)

        except OSError as e:
            logger.error(f"Error writing JSON log: {str(e)}")
            raise

    def print_console_summary(self, stats: Dict) -> None:
        """Print human-readable dashboard summary to console."""

        print("\n" + "="*70)
        print("           INVOICE RECONCILIATION SUMMARY")
        print("="*70)

        print(f"Active Vendors: {stats['active_vendors']}")
        print(f"Total Invoices: {stats['total_invoices']}")
        print(f"Total Amount: {stats['total_invoice_amount']:,.2f}")
        print(f"Reconciled Amount: {stats['total_reconciled_amount']:,.2f}")
        print(f"Pending: {stats['pending_invoices']} | Disputed: {stats['disputed_invoices']}")
        print(f"Success Rate: {stats['success_rate']:.1f}%")

        if stats['status_breakdown']:
            print("\nSTATUS BREAKDOWN:")
            print("-" * 40)
            for status, count in stats['status_breakdown'].items():
                print(f"  {status}: {count}")

        if stats['monthly_trend']:
            print("\nMONTHLY TREND:")
            print("-" * 40)
            for month in stats['monthly_trend']:
                print(f"  {month['month']}: {month['invoices']} invoices, "
                      f"{month['amount']:,.2f} ({month['reconciled']} reconciled)")

        print("\n" + "="*70)

        if stats['disputed_invoices'] > 0:
            print(f"⚠️  WARNING: {stats['disputed_invoices']} invoices are disputed")
        else:
            print("✅ No disputed invoices")

        print("="*70 + "\n")
