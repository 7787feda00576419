from django import forms

from .date_ranges import CUSTOM, RANGE_CHOICES


class DateRangeForm(forms.Form):
    range = forms.ChoiceField(
        choices=RANGE_CHOICES,
        required=False,
        help_text="统计区间，默认取配置值",
    )
    date_from = forms.DateField(required=False, help_text="自定义开始日期")
    date_to = forms.DateField(required=False, help_text="自定义结束日期")

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("range") == CUSTOM:
            date_from = cleaned.get("date_from")
            date_to = cleaned.get("date_to")
            if date_from and date_to and date_from > date_to:
                raise forms.ValidationError("开始日期不能晚于结束日期")
        return cleaned


class BlacklistForm(forms.Form):
    phone = forms.CharField(max_length=32, help_text="手机号")
    reason = forms.CharField(max_length=255, required=False, help_text="拉黑原因")

    def clean_phone(self):
        phone = self.cleaned_data["phone"].strip()
        if not phone:
            raise forms.ValidationError("手机号不能为空")
        return phone


class RiskAssessmentForm(forms.Form):
    payment_method = forms.CharField(max_length=32, required=False, initial="COD")
    amount = forms.IntegerField(min_value=0, required=False, initial=0)
    phone = forms.CharField(max_length=32, required=False)
    address = forms.CharField(max_length=512, required=False)
    product = forms.CharField(max_length=255, required=False)
