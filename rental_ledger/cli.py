'''
To Run:
python -m rental_ledger.cli --store rentals.yaml contract add --unit am-1 --tenant "Ana Diaz" \
    --start 2024-01-15 --end 2024-12-15 --rent 100000
'''
import functools
import logging
from dataclasses import replace
from datetime import date
from pathlib import Path

import click

from rental_ledger import reports
from rental_ledger.billing import BillingService
from rental_ledger.datatypes import PAYMENT_METHODS, TRANSFER, Payment
from rental_ledger.errors import LedgerError
from rental_ledger.storage import YamlStore

DEFAULT_STORE_LOCATION = Path('rentals.yaml')

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

DATE = click.DateTime(formats=['%Y-%m-%d'])


def ledger_command(f):
    """Report ledger failures as a clean CLI error (exit status 1)."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LedgerError as e:
            raise click.ClickException(str(e))
    return wrapper


def _money(amount):
    return f'${amount:,.2f}' if amount >= 0 else f'-${-amount:,.2f}'


def _day(value):
    return value.date() if value is not None else None


@click.group()
@click.option('--store', 'store_path', type=click.Path(path_type=Path), default=DEFAULT_STORE_LOCATION,
              envvar='RENTAL_LEDGER_STORE', show_default=True, help='Path to the YAML ledger store')
@click.option('--verbose', is_flag=True, help='Log debug detail')
@click.pass_context
def main(ctx, store_path, verbose):
    """Rental bookkeeping: leases, monthly invoices, deposits and short stays."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        ctx.obj = BillingService(YamlStore(store_path))
    except LedgerError as e:
        raise click.ClickException(str(e))


@main.command('units')
@click.pass_obj
@ledger_command
def list_units(service):
    """List the rentable units."""
    for u in service.units():
        click.echo(f"{u.id:<6} {u.name:<24} {u.type}")


# -------------------- contracts --------------------

@main.group()
def contract():
    """Lease contracts and their invoices."""


@contract.command('list')
@click.pass_obj
@ledger_command
def contract_list(service):
    for c in service.contracts():
        click.echo(f"{c.id}  {c.unit_id:<6} {c.tenant_name:<24} {c.start_date} .. {c.end_date}  "
                   f"rent {_money(c.monthly_rent)}  deposit {c.deposit_status}")


@contract.command('add')
@click.option('--unit', 'unit_id', required=True)
@click.option('--tenant', required=True)
@click.option('--start', type=DATE, required=True)
@click.option('--end', type=DATE, required=True)
@click.option('--rent', type=str, required=True)
@click.option('--internet', type=str, default=None, help='Defaults to the saved settings')
@click.option('--furniture', type=str, default=None)
@click.option('--other', type=str, default=None)
@click.option('--installments', type=int, default=1, show_default=True, help='Deposit installments')
@click.pass_obj
@ledger_command
def contract_add(service, unit_id, tenant, start, end, rent, internet, furniture, other, installments):
    """Sign a lease and generate its monthly invoices."""
    charges = _charges(service.settings.additional_charges, internet, furniture, other)
    c = service.create_contract(unit_id, tenant, _day(start), _day(end), rent,
                                additional_charges=charges, deposit_installments=installments)
    n = len(service.invoices(c.id))
    click.echo(f"✔ Contract {c.id} created with {n} invoices (deposit {_money(c.deposit_amount)})")


@contract.command('edit')
@click.argument('contract_id')
@click.option('--unit', 'unit_id', default=None)
@click.option('--tenant', default=None)
@click.option('--start', type=DATE, default=None)
@click.option('--end', type=DATE, default=None)
@click.option('--rent', type=str, default=None)
@click.option('--internet', type=str, default=None)
@click.option('--furniture', type=str, default=None)
@click.option('--other', type=str, default=None)
@click.option('--installments', type=int, default=None)
@click.pass_obj
@ledger_command
def contract_edit(service, contract_id, unit_id, tenant, start, end, rent, internet, furniture, other,
                  installments):
    """Change a lease; unpaid invoices follow, paid ones stay frozen."""
    current = service.get_contract(contract_id)
    changes = {}
    if unit_id is not None:
        changes['unit_id'] = unit_id
    if tenant is not None:
        changes['tenant_name'] = tenant
    if start is not None:
        changes['start_date'] = _day(start)
    if end is not None:
        changes['end_date'] = _day(end)
    if rent is not None:
        changes['monthly_rent'] = rent
    if installments is not None:
        changes['deposit_installments'] = installments
    if any(v is not None for v in (internet, furniture, other)):
        changes['additional_charges'] = _charges(current.additional_charges, internet, furniture, other)

    plan = service.update_contract(contract_id, **changes)
    if plan.is_noop:
        click.echo("✔ Nothing changed")
        return
    click.echo(f"✔ {contract_id}: {len(plan.updated)} invoices updated, "
               f"{len(plan.create)} created, {len(plan.delete)} deleted")


@contract.command('show')
@click.argument('contract_id')
@click.pass_obj
@ledger_command
def contract_show(service, contract_id):
    c = service.get_contract(contract_id)
    click.echo(f"{c.tenant_name} on {c.unit_id}: {c.start_date} .. {c.end_date}")
    click.echo(f"Rent {_money(c.monthly_rent)} + charges {_money(c.additional_charges.total())}")
    click.echo(f"Deposit {_money(c.deposit_amount)}, balance {_money(c.deposit_balance)} ({c.deposit_status})")
    click.echo("")
    for inv in service.invoices(c.id):
        flag = ' (reminded)' if inv.reminder_sent else ''
        click.echo(f"{inv.period}  due {inv.due_date}  total {_money(inv.total_amount):>14}  "
                   f"balance {_money(inv.balance):>14}  {inv.status}{flag}  {inv.id}")


@contract.command('delete')
@click.argument('contract_id')
@click.confirmation_option(prompt='Delete the contract and all of its invoices?')
@click.pass_obj
@ledger_command
def contract_delete(service, contract_id):
    service.delete_contract(contract_id)
    click.echo(f"✔ Deleted {contract_id}")


def _charges(base, internet, furniture, other):
    return replace(
        base,
        internet=internet if internet is not None else base.internet,
        furniture=furniture if furniture is not None else base.furniture,
        other=other if other is not None else base.other,
    )


# -------------------- payments --------------------

def payment_options(f):
    f = click.option('--note', default='', help='Free-text observation')(f)
    f = click.option('--method', type=click.Choice(PAYMENT_METHODS), default=TRANSFER, show_default=True)(f)
    f = click.option('--date', 'paid_on', type=DATE, default=None, help='Defaults to today')(f)
    f = click.option('--payer', default=None, help='Defaults to the tenant / guest name')(f)
    f = click.option('--amount', type=str, required=True, help='Negative for a credit note')(f)
    return f


def _payment(amount, payer, paid_on, method, note, default_payer):
    return Payment(
        amount=amount,
        date=_day(paid_on) or date.today(),
        payer_name=payer or default_payer,
        method=method,
        note=note,
    )


@main.group()
def pay():
    """Record a payment or credit note."""


@pay.command('invoice')
@click.argument('invoice_id')
@payment_options
@click.pass_obj
@ledger_command
def pay_invoice(service, invoice_id, amount, payer, paid_on, method, note):
    inv = service.get_invoice(invoice_id)
    inv = service.record_invoice_payment(invoice_id, _payment(amount, payer, paid_on, method, note, inv.tenant_name))
    click.echo(f"💰 {inv.period}: balance {_money(inv.balance)} ({inv.status})")


@pay.command('deposit')
@click.argument('contract_id')
@payment_options
@click.pass_obj
@ledger_command
def pay_deposit(service, contract_id, amount, payer, paid_on, method, note):
    c = service.get_contract(contract_id)
    c = service.record_deposit_payment(contract_id, _payment(amount, payer, paid_on, method, note, c.tenant_name))
    click.echo(f"💰 Deposit balance {_money(c.deposit_balance)} ({c.deposit_status})")


@pay.command('booking')
@click.argument('booking_id')
@payment_options
@click.pass_obj
@ledger_command
def pay_booking(service, booking_id, amount, payer, paid_on, method, note):
    b = service.get_booking(booking_id)
    b = service.record_booking_payment(booking_id, _payment(amount, payer, paid_on, method, note, b.guest_name))
    click.echo(f"💰 Booking balance {_money(b.balance)} ({b.status})")


# -------------------- bookings --------------------

@main.group()
def booking():
    """Short-stay bookings."""


@booking.command('quote')
@click.option('--start', type=DATE, required=True)
@click.option('--end', type=DATE, required=True)
@click.option('--guests', type=int, required=True)
@click.pass_obj
@ledger_command
def booking_quote(service, start, end, guests):
    q = service.quote_booking(_day(start), _day(end), guests)
    click.echo(f"{q.nights} nights: total {_money(q.total_amount)}, suggested deposit {_money(q.suggested_deposit)}")


@booking.command('add')
@click.option('--unit', 'unit_id', required=True)
@click.option('--guest', required=True)
@click.option('--start', type=DATE, required=True)
@click.option('--end', type=DATE, required=True)
@click.option('--guests', type=int, required=True)
@click.option('--total', type=str, default=None, help='Overrides the suggested price')
@click.option('--deposit', type=str, default=None, help='Overrides the suggested deposit')
@click.pass_obj
@ledger_command
def booking_add(service, unit_id, guest, start, end, guests, total, deposit):
    b = service.create_booking(unit_id, guest, _day(start), _day(end), guests,
                               total_amount=total, deposit=deposit)
    click.echo(f"✔ Booking {b.id}: total {_money(b.total_amount)}, deposit {_money(b.deposit)}")


@booking.command('list')
@click.pass_obj
@ledger_command
def booking_list(service):
    for b in service.bookings():
        click.echo(f"{b.id}  {b.unit_id:<6} {b.guest_name:<24} {b.start_date} .. {b.end_date}  "
                   f"{b.guest_count} guests  balance {_money(b.balance)} ({b.status})")


@booking.command('delete')
@click.argument('booking_id')
@click.pass_obj
@ledger_command
def booking_delete(service, booking_id):
    service.delete_booking(booking_id)
    click.echo(f"✔ Deleted {booking_id}")


# -------------------- reminders & reports --------------------

@main.command()
@click.pass_obj
@ledger_command
def upcoming(service):
    """Invoices still owing, earliest due first."""
    invoices = reports.upcoming_invoices(service.invoices())
    if not invoices:
        click.echo("No pending invoices")
    for inv in invoices:
        sent = 'reminded' if inv.reminder_sent else ''
        click.echo(f"{inv.due_date}  {inv.tenant_name:<24} {_money(inv.balance):>14}  {inv.id}  {sent}")


@main.command()
@click.argument('invoice_id')
@click.pass_obj
@ledger_command
def remind(service, invoice_id):
    """Print a rent reminder and mark it as sent."""
    inv = service.get_invoice(invoice_id)
    click.echo(reports.reminder_message(inv))
    service.mark_reminder_sent(invoice_id)


@main.command()
@click.option('--from', 'start', type=DATE, default=None)
@click.option('--to', 'end', type=DATE, default=None)
@click.option('--unit', 'unit_id', default=None)
@click.option('--csv', 'csv_path', type=click.Path(path_type=Path), default=None, help='Write the report to CSV')
@click.pass_obj
@ledger_command
def report(service, start, end, unit_id, csv_path):
    """Payments received, oldest first."""
    df = reports.payment_report(service.contracts(), service.invoices(), service.bookings(),
                                start=_day(start), end=_day(end), unit_id=unit_id)
    if csv_path:
        reports.write_report_csv(df, csv_path)
        click.echo(f"✔ {len(df)} rows written to {csv_path}")
        return
    for _, row in df.iterrows():
        click.echo(f"{row['Date']}  {row['Type']:<13} {row['Description']:<50} {_money(row['Amount']):>14}")
    click.echo(f"\nTotal received: {_money(reports.report_total(df))}")


# -------------------- backups --------------------

def _echo_counts(counts):
    for name, n in counts.items():
        click.echo(f"- {name.capitalize()}: {n}")


@main.command()
@click.argument('path', type=click.Path(dir_okay=False, path_type=Path))
@click.pass_obj
@ledger_command
def backup(service, path):
    """Save every record to a single backup file."""
    counts = service.backup(path)
    click.echo(f"✔ Backup written to {path}")
    _echo_counts(counts)


@main.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.confirmation_option(prompt='Replace ALL current data with this backup? This cannot be undone.')
@click.pass_obj
@ledger_command
def restore(service, path):
    """Replace all data with the content of a backup file."""
    counts = service.restore(path)
    click.echo(f"✔ Restored {path}")
    _echo_counts(counts)


# -------------------- settings --------------------

@main.group()
def settings():
    """Default charges, nightly rates and booking deposit percentage."""


@settings.command('show')
@click.pass_obj
@ledger_command
def settings_show(service):
    s = service.settings
    click.echo("Default charges: " + ", ".join(f"{k} {_money(v)}" for k, v in s.additional_charges.items()))
    r = s.daily_rates
    click.echo(f"Nightly rates: 1 guest {_money(r.p1)}, 2 {_money(r.p2)}, 3 {_money(r.p3)}, 4+ {_money(r.p4)}")
    click.echo(f"Booking deposit: {s.booking_deposit_percentage}%")


@settings.command('set')
@click.option('--internet', type=str, default=None)
@click.option('--furniture', type=str, default=None)
@click.option('--other', type=str, default=None)
@click.option('--p1', type=str, default=None)
@click.option('--p2', type=str, default=None)
@click.option('--p3', type=str, default=None)
@click.option('--p4', type=str, default=None)
@click.option('--deposit-percent', type=str, default=None)
@click.pass_obj
@ledger_command
def settings_set(service, internet, furniture, other, p1, p2, p3, p4, deposit_percent):
    s = service.settings
    rates = s.daily_rates
    updated = replace(
        s,
        additional_charges=_charges(s.additional_charges, internet, furniture, other),
        daily_rates=replace(
            rates,
            p1=p1 if p1 is not None else rates.p1,
            p2=p2 if p2 is not None else rates.p2,
            p3=p3 if p3 is not None else rates.p3,
            p4=p4 if p4 is not None else rates.p4,
        ),
        booking_deposit_percentage=(deposit_percent if deposit_percent is not None
                                    else s.booking_deposit_percentage),
    )
    service.save_settings(updated)
    click.echo("✔ Settings saved")


if __name__ == '__main__':
    main()
